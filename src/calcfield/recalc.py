"""Recalculation orchestrator.

Propagates one changed value through every calculated field that depends on
it, for a single subject:

    Idle -> BuildingEnvironment -> Evaluating -> WritingResult | RecordingFailure -> Done

Formulas are evaluated in topological order so each one sees values computed
earlier in the same pass. A failing formula is recorded and its stored value
is left untouched; independent formulas still update.
"""

import logging
from collections.abc import Hashable, Iterable

from pydantic import BaseModel, ConfigDict

from .errors import EvalError
from .evaluator import UpstreamFailed, evaluate_definition
from .graph import DependencyGraph
from .store import ValueStore

logger = logging.getLogger(__name__)


class RecalcResult(BaseModel):
    """Outcome of one recalculation pass."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    updated: dict[str, float] = {}
    failed: dict[str, EvalError] = {}

    @property
    def ok(self) -> bool:
        return not self.failed

    def errors(self) -> dict[str, str]:
        return {name: str(err) for name, err in self.failed.items()}


class _Pass:
    """State for one pass over one subject. Reads each stored name at most once."""

    def __init__(self, graph: DependencyGraph, store: ValueStore, subject_id: Hashable):
        self.graph = graph
        self.store = store
        self.subject_id = subject_id
        self.result = RecalcResult()
        self._read: dict[str, float | None] = {}

    def run(self, names: Iterable[str]) -> RecalcResult:
        for name in names:
            self._recalculate_one(name)
        return self.result

    def _recalculate_one(self, name: str) -> None:
        definition = self.graph.definitions[name]
        logger.debug("%s[%s]: building environment", name, self.subject_id)
        try:
            env = self._environment(definition.dependencies)
            logger.debug("%s[%s]: evaluating %s", name, self.subject_id, definition.expression)
            value = evaluate_definition(definition, env)
        except EvalError as e:
            logger.warning("%s[%s]: not recalculated: %s", name, self.subject_id, e)
            self.result.failed[name] = e
            return

        logger.debug("%s[%s]: writing %s", name, self.subject_id, value)
        self.store.write(name, self.subject_id, value)
        self.result.updated[name] = value

    def _environment(self, dependencies: Iterable[str]) -> dict[str, float | None]:
        env: dict[str, float | None] = {}
        for dep in dependencies:
            if dep in self.result.updated:
                env[dep] = self.result.updated[dep]
            elif dep in self.result.failed:
                raise UpstreamFailed(dep)
            else:
                env[dep] = self._store_read(dep)
        return env

    def _store_read(self, name: str) -> float | None:
        if name not in self._read:
            self._read[name] = self.store.read(name, self.subject_id)
        return self._read[name]


def recalculate(
    changed: str,
    graph: DependencyGraph,
    store: ValueStore,
    subject_id: Hashable = None,
) -> RecalcResult:
    """Recompute every calculated field transitively depending on `changed`.

    Store errors that are `EvalError`s (e.g. a non-numeric stored value) fail
    only the formula that read them. Other exceptions from the store propagate.
    """
    affected = graph.affected(changed)
    if not affected:
        logger.debug("%s[%s]: no dependent formulas", changed, subject_id)
        return RecalcResult()

    result = _Pass(graph, store, subject_id).run(affected)
    logger.info(
        "recalculated %s for subject %s: %d updated, %d failed",
        changed,
        subject_id,
        len(result.updated),
        len(result.failed),
    )
    return result


def recalculate_all(
    graph: DependencyGraph,
    store: ValueStore,
    subject_id: Hashable = None,
    only: str | None = None,
) -> RecalcResult:
    """Recompute all calculated fields of a subject, e.g. after a formula edit.

    With `only`, recompute that formula and everything depending on it.
    """
    if only is None:
        names = graph.calculated
    else:
        if not graph.is_calculated(only):
            raise KeyError(f"not a calculated field: {only}")
        downstream = set(graph.affected(only))
        names = [name for name in graph.calculated if name == only or name in downstream]

    result = _Pass(graph, store, subject_id).run(names)
    logger.info(
        "recalculated %d formulas for subject %s: %d updated, %d failed",
        len(names),
        subject_id,
        len(result.updated),
        len(result.failed),
    )
    return result

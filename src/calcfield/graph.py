"""Dependency graph over the calculated fields of one scope.

An edge A -> B means "A's value is required to compute B". Formula names are
calculated nodes; every other referenced name is a source node read from the
store. The graph is rebuilt whenever a definition is added, removed or edited.

Example:
    graph = build_graph([
        FormulaDefinition(name="bmi", expression="{weight} / ({height} * {height})"),
        FormulaDefinition(name="bmi_over", expression="{bmi} - 25"),
    ])
    graph.order               # ['weight', 'height', 'bmi', 'bmi_over']
    graph.affected("weight")  # ['bmi', 'bmi_over']
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .config import DEFAULT_LIMITS, EngineLimits
from .definitions import FormulaDefinition
from .errors import FormulaError
from .references import base_name

WHITE, GRAY, BLACK = 0, 1, 2


class CycleError(FormulaError):
    """Raised when formulas depend on each other in a loop."""

    def __init__(self, path: list[str]):
        super().__init__(f"circular dependency: {' -> '.join(path + path[:1])}")
        self.path = path


class DuplicateDefinitionError(FormulaError):
    def __init__(self, name: str):
        super().__init__(f"duplicate formula name: {name}")
        self.name = name


@dataclass
class DependencyGraph:
    """Acyclic graph of formula dependencies with a cached evaluation order."""

    definitions: dict[str, FormulaDefinition] = field(default_factory=dict)
    # {name: names it requires}
    requires: dict[str, tuple[str, ...]] = field(default_factory=dict)
    # {name: names that require it}
    dependents: dict[str, list[str]] = field(default_factory=dict)
    # Topological order: every name after everything it requires
    order: list[str] = field(default_factory=list)

    def __contains__(self, name: str) -> bool:
        return name in self.requires

    def is_calculated(self, name: str) -> bool:
        return name in self.definitions

    @property
    def sources(self) -> list[str]:
        return [name for name in self.order if name not in self.definitions]

    @property
    def calculated(self) -> list[str]:
        return [name for name in self.order if name in self.definitions]

    def get_dependencies(self, name: str) -> tuple[str, ...]:
        return self.requires.get(name, ())

    def affected(self, changed: str) -> list[str]:
        """Calculated names transitively depending on `changed`, in evaluation order.

        A change to 'weight' also reaches formulas reading qualified forms of
        it such as {measure:weight} or {previous:weight}.
        """
        seeds = [changed]
        seeds.extend(
            name for name in self.sources if name != changed and base_name(name) == changed
        )

        reached: set[str] = set()
        stack = list(seeds)
        while stack:
            node = stack.pop()
            for dependent in self.dependents.get(node, []):
                if dependent not in reached:
                    reached.add(dependent)
                    stack.append(dependent)

        return [name for name in self.order if name in reached]

    def with_definition(self, definition: FormulaDefinition, limits: EngineLimits | None = None):
        """Rebuilt graph with `definition` added or replacing the one of the same name."""
        defs = dict(self.definitions)
        defs[definition.name] = definition
        return build_graph(defs.values(), limits)

    def without_definition(self, name: str, limits: EngineLimits | None = None):
        defs = {k: v for k, v in self.definitions.items() if k != name}
        return build_graph(defs.values(), limits)


def build_graph(
    definitions: Iterable[FormulaDefinition],
    limits: EngineLimits | None = None,
) -> DependencyGraph:
    """Build and validate the dependency graph for one scope.

    Raises:
        DuplicateDefinitionError: Two definitions share a name
        CycleError: Definitions depend on each other in a loop
        LimitExceededError: The graph has more nodes than `limits` allow
    """
    limits = limits or DEFAULT_LIMITS
    graph = DependencyGraph()

    for defn in definitions:
        if defn.name in graph.definitions:
            raise DuplicateDefinitionError(defn.name)
        graph.definitions[defn.name] = defn
        graph.requires[defn.name] = defn.dependencies

    for defn in graph.definitions.values():
        for dep in defn.dependencies:
            graph.requires.setdefault(dep, ())

    limits.check_graph(len(graph.requires))

    for name in graph.requires:
        graph.dependents[name] = []
    for name, deps in graph.requires.items():
        for dep in deps:
            graph.dependents[dep].append(name)

    graph.order = _topo_sort(graph.requires)
    return graph


def _topo_sort(requires: dict[str, tuple[str, ...]]) -> list[str]:
    """Three-color DFS; post-order gives dependencies before dependents."""
    color = {name: WHITE for name in requires}
    order: list[str] = []
    path: list[str] = []

    def visit(name: str) -> None:
        color[name] = GRAY
        path.append(name)
        for dep in requires[name]:
            if color[dep] == GRAY:
                raise CycleError(path[path.index(dep) :])
            if color[dep] == WHITE:
                visit(dep)
        path.pop()
        color[name] = BLACK
        order.append(name)

    for name in requires:
        if color[name] == WHITE:
            visit(name)

    return order

"""Engine limits, loadable from YAML.

Example limits file:

    max_expression_length: 500
    max_dependencies: 20
    max_graph_size: 200
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .errors import FormulaError


class LimitExceededError(FormulaError):
    """A formula or formula set is larger than the configured limits allow."""

    def __init__(self, what: str, size: int, limit: int):
        super().__init__(f"{what} is {size}, limit is {limit}")
        self.what = what
        self.size = size
        self.limit = limit


class EngineLimits(BaseModel):
    """Bounds checked when formulas are saved, capping recalculation cost."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_expression_length: int = Field(default=1000, gt=0)
    max_dependencies: int = Field(default=50, gt=0)
    max_graph_size: int = Field(default=500, gt=0)

    def check_expression(self, expression: str) -> None:
        if len(expression) > self.max_expression_length:
            raise LimitExceededError(
                "expression length", len(expression), self.max_expression_length
            )

    def check_dependencies(self, dependencies: list[str]) -> None:
        if len(dependencies) > self.max_dependencies:
            raise LimitExceededError("dependency count", len(dependencies), self.max_dependencies)

    def check_graph(self, node_count: int) -> None:
        if node_count > self.max_graph_size:
            raise LimitExceededError("dependency graph size", node_count, self.max_graph_size)


DEFAULT_LIMITS = EngineLimits()


def load_limits(path: str | Path) -> EngineLimits:
    """Load limits from a YAML mapping; missing keys keep their defaults."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: limits file must contain a mapping")
    return EngineLimits(**data)


def load_catalog(path: str | Path) -> list[dict]:
    """Read raw formula entries from a YAML catalog.

    Accepts either a list of entries or a mapping with a `formulas:` list:

        formulas:
          - name: bmi
            expression: "{weight} / ({height} * {height})"
            decimal_places: 2
    """
    with open(path) as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("formulas", [])
    if not isinstance(data, list) or not all(isinstance(e, dict) for e in data):
        raise ValueError(f"{path}: expected a list of formula entries")
    return data

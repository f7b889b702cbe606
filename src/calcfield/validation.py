"""Authoring-time validation of a candidate formula.

Runs everything that must pass before a formula may be saved: size limits,
parsing, self-reference and cycle checks against the other formulas of the
scope. The response shape is what the admin UI consumes:

    {"valid": True, "dependencies": ["weight", "height"]}
    {"valid": False, "error": "position 4: trailing operator '+'"}
"""

import logging
from collections.abc import Iterable

from pydantic import BaseModel, ValidationError

from .config import DEFAULT_LIMITS, EngineLimits
from .definitions import FormulaDefinition
from .errors import FormulaError
from .graph import build_graph
from .parser import ParseError, parse
from .references import extract_references

logger = logging.getLogger(__name__)

# Placeholder used when the candidate has no name yet; cannot collide with a
# real name because names are identifiers.
_UNNAMED = "__candidate__"


class ValidationResult(BaseModel):
    valid: bool
    dependencies: list[str] | None = None
    error: str | None = None

    def as_response(self) -> dict:
        return self.model_dump(exclude_none=True)


def check_formula(
    expression: str,
    definitions: Iterable[FormulaDefinition] = (),
    name: str | None = None,
    decimal_places: int = 2,
    limits: EngineLimits | None = None,
) -> FormulaDefinition:
    """Validate a candidate and return it as a definition, or raise.

    The candidate replaces any existing definition with the same `name`.

    Raises:
        LimitExceededError, ParseError, SelfReferenceError, CycleError,
        DuplicateDefinitionError
    """
    limits = limits or DEFAULT_LIMITS
    if not isinstance(expression, str):
        raise ParseError("formula must be a string", 0)
    limits.check_expression(expression)
    limits.check_dependencies(extract_references(parse(expression)))

    candidate = FormulaDefinition(
        name=name or _UNNAMED,
        expression=expression,
        decimal_places=decimal_places,
    )
    scope = {d.name: d for d in definitions}
    scope[candidate.name] = candidate
    build_graph(scope.values(), limits)
    return candidate


def validate_formula(
    expression: str,
    definitions: Iterable[FormulaDefinition] = (),
    name: str | None = None,
    limits: EngineLimits | None = None,
) -> ValidationResult:
    """Validation endpoint contract: never raises for a bad formula."""
    try:
        candidate = check_formula(expression, definitions, name=name, limits=limits)
    except (FormulaError, ValidationError) as e:
        logger.debug("rejected formula %r: %s", expression, e)
        return ValidationResult(valid=False, error=str(e))
    return ValidationResult(valid=True, dependencies=list(candidate.dependencies))

"""Calculated field / measure definitions."""

from functools import cached_property
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from . import ast
from .errors import FormulaError
from .functions import MAX_PLACES
from .parser import parse
from .references import extract_references, split_reference


class SelfReferenceError(FormulaError):
    def __init__(self, name: str):
        super().__init__(f"formula {name!r} references itself")
        self.name = name


class FormulaDefinition(BaseModel):
    """One calculated field or measure within a scope.

    `dependencies` is derived from `expression`. Definitions are immutable;
    use `revise()` to change one, which re-derives the dependencies.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    expression: str
    decimal_places: int = Field(default=2, ge=0, le=MAX_PLACES)
    label: str | None = None  # human-readable display name
    unit: str | None = None  # e.g. "kg/m²"

    @field_validator("expression")
    @classmethod
    def _parses(cls, value: str) -> str:
        parse(value)
        return value

    @model_validator(mode="after")
    def _no_self_reference(self) -> "FormulaDefinition":
        for ref in self.dependencies:
            qualifier, base = split_reference(ref)
            if base == self.name and qualifier in (None, "measure"):
                raise SelfReferenceError(self.name)
        return self

    @cached_property
    def tree(self) -> ast.Expr:
        return parse(self.expression)

    @computed_field
    @cached_property
    def dependencies(self) -> tuple[str, ...]:
        return tuple(extract_references(self.tree))

    def revise(self, **changes) -> "FormulaDefinition":
        """A new definition with `changes` applied and dependencies re-derived."""
        data = self.model_dump(exclude={"dependencies"})
        data.update(changes)
        return FormulaDefinition(**data)

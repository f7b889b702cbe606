"""Value store boundary.

The engine reads and writes values only through a `ValueStore`. Host
systems keep custom-field values in loosely typed columns selected by a type
tag; the `Value` union models those, and `to_number()` is the single point
where they are coerced for the engine.
"""

import re
from collections.abc import Hashable
from typing import Annotated, Protocol, runtime_checkable
from typing import Literal as TypingLiteral

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .evaluator import InvalidValue

NUMERIC_TEXT_RE = re.compile(r"\s*[-+]?(\d+(\.\d*)?|\.\d+)\s*")


@runtime_checkable
class ValueStore(Protocol):
    def read(self, name: str, subject_id: Hashable) -> float | None: ...

    def write(self, name: str, subject_id: Hashable, value: float) -> None: ...


class NumberValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TypingLiteral["number"] = "number"
    value: float

    def to_number(self, name: str) -> float:
        return self.value


class TextValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TypingLiteral["text"] = "text"
    value: str

    def to_number(self, name: str) -> float:
        if not NUMERIC_TEXT_RE.fullmatch(self.value):
            raise InvalidValue(name, self.value)
        return float(self.value)


class BooleanValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TypingLiteral["boolean"] = "boolean"
    value: bool

    def to_number(self, name: str) -> float:
        raise InvalidValue(name, self.value)


Value = Annotated[NumberValue | TextValue | BooleanValue, Field(discriminator="type")]

_value_adapter = TypeAdapter(Value)


def coerce_value(value: Value | dict) -> Value:
    """Validate a raw tagged value, e.g. {"type": "text", "value": "72.5"}."""
    if isinstance(value, (NumberValue, TextValue, BooleanValue)):
        return value
    return _value_adapter.validate_python(value)


class InMemoryStore:
    """Dict-backed store of typed values, keyed by (subject, name).

    Suitable for tests and for hosts that load a subject's values up front
    and persist `writes` afterwards.
    """

    def __init__(self, values: dict[Hashable, dict[str, Value | dict | float]] | None = None):
        self._values: dict[tuple[Hashable, str], Value] = {}
        self.writes: list[tuple[Hashable, str, float]] = []
        for subject_id, fields in (values or {}).items():
            for name, value in fields.items():
                self.set(name, subject_id, value)

    def set(self, name: str, subject_id: Hashable, value: Value | dict | float) -> None:
        """Store a raw value without recording it as an engine write."""
        if isinstance(value, bool):
            value = BooleanValue(value=value)
        elif isinstance(value, (int, float)):
            value = NumberValue(value=value)
        self._values[(subject_id, name)] = coerce_value(value)

    def get(self, name: str, subject_id: Hashable) -> Value | None:
        return self._values.get((subject_id, name))

    def read(self, name: str, subject_id: Hashable) -> float | None:
        value = self._values.get((subject_id, name))
        if value is None:
            return None
        return value.to_number(name)

    def write(self, name: str, subject_id: Hashable, value: float) -> None:
        self._values[(subject_id, name)] = NumberValue(value=value)
        self.writes.append((subject_id, name, value))

"""Built-in functions and rounding shared by the parser and evaluator."""

import math
from collections.abc import Callable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation

from .errors import EvalError

# Enough digits to quantize any finite double at any supported precision.
_WIDE = Context(prec=400)
MAX_PLACES = 10


class DomainError(EvalError):
    """A function or operator was applied outside its mathematical domain."""


def round_half_up(value: float, places: int) -> float:
    """Round to `places` decimals, ties away from zero.

    Works on the shortest repr of the float rather than its binary expansion,
    so 2.675 rounds to 2.68 and 1.005 to 1.01, the way the value is displayed.
    """
    if not math.isfinite(value):
        return value
    quantum = Decimal(1).scaleb(-places)
    try:
        rounded = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP, context=_WIDE)
    except InvalidOperation:
        raise DomainError(f"cannot round {value} to {places} decimal places") from None
    return float(rounded)


def _sqrt(x: float) -> float:
    if x < 0:
        raise DomainError(f"cannot take square root of negative number {x}")
    return math.sqrt(x)


def _round(x: float, places: float = 0) -> float:
    if places != int(places) or not 0 <= places <= MAX_PLACES:
        raise DomainError(
            f"round() places must be an integer from 0 to {MAX_PLACES}, got {places}"
        )
    return round_half_up(x, int(places))


@dataclass(frozen=True)
class Builtin:
    name: str
    impl: Callable[..., float]
    min_args: int
    max_args: int | None  # None = variadic
    description: str
    example: str

    def accepts(self, count: int) -> bool:
        if count < self.min_args:
            return False
        return self.max_args is None or count <= self.max_args


BUILTINS: dict[str, Builtin] = {
    b.name: b
    for b in [
        Builtin("sqrt", _sqrt, 1, 1, "Square root", "sqrt({value})"),
        Builtin("abs", abs, 1, 1, "Absolute value", "abs({value})"),
        Builtin("round", _round, 1, 2, "Round to N decimals", "round({value}, 2)"),
        Builtin("floor", math.floor, 1, 1, "Round down", "floor({value})"),
        Builtin("ceil", math.ceil, 1, 1, "Round up", "ceil({value})"),
        Builtin("min", min, 1, None, "Minimum value", "min({value1}, {value2})"),
        Builtin("max", max, 1, None, "Maximum value", "max({value1}, {value2})"),
    ]
}

OPERATORS = ["+", "-", "*", "/", "^"]


def describe_functions() -> dict[str, list]:
    """Operators and functions available to formula authors."""
    return {
        "operators": list(OPERATORS),
        "functions": [
            {"name": b.name, "description": b.description, "example": b.example}
            for b in BUILTINS.values()
        ],
    }

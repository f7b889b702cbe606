"""Evaluator: computes a formula's value from a variable environment."""

import math
from collections.abc import Mapping
from decimal import Decimal
from numbers import Real

from . import ast
from .definitions import FormulaDefinition
from .errors import EvalError
from .functions import BUILTINS, DomainError, round_half_up

# name -> current value; None or a missing key means "absent"
Environment = Mapping[str, float | None]


class MissingVariable(EvalError):
    def __init__(self, name: str):
        super().__init__(f"missing value for variable: {name}")
        self.name = name


class DivisionByZero(EvalError):
    def __init__(self):
        super().__init__("division by zero")


class InvalidValue(EvalError):
    def __init__(self, name: str, value: object):
        super().__init__(f"invalid value for variable {name}: {value!r}")
        self.name = name
        self.value = value


class UpstreamFailed(EvalError):
    """A calculated dependency failed earlier in the same recalculation pass."""

    def __init__(self, name: str):
        super().__init__(f"dependency {name} could not be calculated")
        self.name = name


def to_number(name: str, value: object) -> float:
    """Coerce an environment value to float. Booleans and text are rejected."""
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        raise InvalidValue(name, value)
    number = float(value)
    if math.isnan(number):
        raise InvalidValue(name, value)
    return number


def _power(base: float, exponent: float) -> float:
    try:
        result = base**exponent
    except OverflowError:
        raise DomainError(f"{base} ^ {exponent} is too large") from None
    except ZeroDivisionError:
        raise DivisionByZero() from None
    if isinstance(result, complex):
        raise DomainError(f"{base} ^ {exponent} is not a real number")
    return result


def evaluate(expr: ast.Expr, env: Environment) -> float:
    """Evaluate an expression against `env`.

    Raises:
        MissingVariable: A referenced name is absent from `env`
        DivisionByZero: A divisor evaluated to exactly zero
        InvalidValue: A referenced value is not a number
        DomainError: A function or power has no real result
    """
    match expr:
        case ast.Number(value=v):
            return v

        case ast.Var(name=name):
            value = env.get(name)
            if value is None:
                raise MissingVariable(name)
            return to_number(name, value)

        case ast.BinOp(op=op, left=left, right=right):
            left_val = evaluate(left, env)
            right_val = evaluate(right, env)
            match op:
                case "+":
                    return left_val + right_val
                case "-":
                    return left_val - right_val
                case "*":
                    return left_val * right_val
                case "/":
                    if right_val == 0:
                        raise DivisionByZero()
                    return left_val / right_val
                case "^":
                    return _power(left_val, right_val)
                case _:
                    raise EvalError(f"unknown op: {op}")

        case ast.UnaryOp(operand=operand):
            return -evaluate(operand, env)

        case ast.Call(func=func, args=args):
            if func not in BUILTINS:
                raise EvalError(f"unknown function: {func}")
            arg_vals = [evaluate(a, env) for a in args]
            try:
                return float(BUILTINS[func].impl(*arg_vals))
            except (OverflowError, ValueError) as e:
                raise DomainError(f"{func}: {e}") from None

        case _:
            raise EvalError(f"unknown expr type: {type(expr)}")


def evaluate_definition(definition: FormulaDefinition, env: Environment) -> float:
    """Evaluate a definition's formula and round to its decimal places."""
    return round_half_up(evaluate(definition.tree, env), definition.decimal_places)

"""Render an expression tree back to normalized formula text.

Output uses single spaces around binary operators and only the parentheses
the precedence rules require, so parse(unparse(e)) rebuilds an equal tree.
"""

from decimal import Decimal

from . import ast

PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2, "^": 3}
UNARY = 4
ATOM = 5


def _precedence(expr: ast.Expr) -> int:
    match expr:
        case ast.BinOp(op=op):
            return PRECEDENCE[op]
        case ast.UnaryOp():
            return UNARY
        case _:
            return ATOM


def format_number(value: float) -> str:
    """Plain decimal notation; the lexer has no exponent syntax."""
    if value.is_integer():
        return str(int(value))
    text = format(Decimal(repr(value)), "f")
    return text.rstrip("0").rstrip(".") if "." in text else text


def unparse(expr: ast.Expr) -> str:
    match expr:
        case ast.Number(value=v):
            return format_number(v)

        case ast.Var(name=name):
            return f"{{{name}}}"

        case ast.UnaryOp(operand=operand):
            inner = unparse(operand)
            if isinstance(operand, ast.BinOp):
                inner = f"({inner})"
            return f"-{inner}"

        case ast.BinOp(op=op, left=left, right=right):
            prec = PRECEDENCE[op]
            lhs = unparse(left)
            rhs = unparse(right)
            left_prec = _precedence(left)
            right_prec = _precedence(right)
            if left_prec < prec or (op == "^" and left_prec <= prec):
                lhs = f"({lhs})"
            if right_prec < prec or (right_prec == prec and op != "^"):
                rhs = f"({rhs})"
            return f"{lhs} {op} {rhs}"

        case ast.Call(func=func, args=args):
            return f"{func}({', '.join(unparse(a) for a in args)})"

        case _:
            raise TypeError(f"unknown expr type: {type(expr)}")

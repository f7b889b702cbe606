"""Reference extraction and rewriting over expression trees."""

from collections.abc import Mapping

from . import ast
from .parser import REFERENCE_RE


def extract_references(expr: ast.Expr) -> list[str]:
    """Every referenced variable name, first occurrence order, no duplicates."""
    found: dict[str, None] = {}
    _walk_refs(expr, found)
    return list(found)


def _walk_refs(expr: ast.Expr, found: dict[str, None]) -> None:
    match expr:
        case ast.Number():
            pass
        case ast.Var(name=name):
            found.setdefault(name)
        case ast.BinOp(left=left, right=right):
            _walk_refs(left, found)
            _walk_refs(right, found)
        case ast.UnaryOp(operand=operand):
            _walk_refs(operand, found)
        case ast.Call(args=args):
            for arg in args:
                _walk_refs(arg, found)


def split_reference(name: str) -> tuple[str | None, str]:
    """Split 'previous:weight' into ('previous', 'weight').

    Plain names have no qualifier: 'weight' -> (None, 'weight').
    """
    m = REFERENCE_RE.fullmatch(name)
    if m is None:
        raise ValueError(f"not a variable reference: {name!r}")
    return m.group("qualifier"), m.group("name")


def base_name(name: str) -> str:
    return split_reference(name)[1]


def rename_references(expr: ast.Expr, mapping: Mapping[str, str]) -> ast.Expr:
    """Return a copy of `expr` with variables renamed through `mapping`.

    Qualified references are renamed by base name, so mapping
    {'weight': 'weight_kg'} turns {previous:weight} into {previous:weight_kg}.
    """
    match expr:
        case ast.Var(name=name):
            qualifier, base = split_reference(name)
            if name in mapping:
                return ast.Var(name=mapping[name])
            if qualifier is not None and base in mapping:
                return ast.Var(name=f"{qualifier}:{mapping[base]}")
            return expr
        case ast.BinOp(op=op, left=left, right=right):
            return ast.BinOp(
                op=op,
                left=rename_references(left, mapping),
                right=rename_references(right, mapping),
            )
        case ast.UnaryOp(operand=operand):
            return ast.UnaryOp(operand=rename_references(operand, mapping))
        case ast.Call(func=func, args=args):
            return ast.Call(func=func, args=tuple(rename_references(a, mapping) for a in args))
        case _:
            return expr

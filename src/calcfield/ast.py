"""AST nodes for calculated-field formulas."""

from typing import Annotated
from typing import Literal as TypingLiteral

from pydantic import BaseModel, ConfigDict, Field


class Node(BaseModel):
    # Parsed trees are cached and shared between subjects, so they never change.
    model_config = ConfigDict(frozen=True)


class Number(Node):
    type: TypingLiteral["number"] = "number"
    value: float


class Var(Node):
    """Variable reference (e.g. 'weight' or 'previous:weight')."""

    type: TypingLiteral["var"] = "var"
    name: str


class BinOp(Node):
    type: TypingLiteral["binop"] = "binop"
    op: TypingLiteral["+", "-", "*", "/", "^"]
    left: "Expr"
    right: "Expr"


class UnaryOp(Node):
    type: TypingLiteral["unaryop"] = "unaryop"
    op: TypingLiteral["-"] = "-"
    operand: "Expr"


class Call(Node):
    """Built-in function call (e.g. sqrt({area}), max({a}, {b}))."""

    type: TypingLiteral["call"] = "call"
    func: str
    args: tuple["Expr", ...]


Expr = Annotated[
    Number | Var | BinOp | UnaryOp | Call,
    Field(discriminator="type"),
]


BinOp.model_rebuild()
UnaryOp.model_rebuild()
Call.model_rebuild()

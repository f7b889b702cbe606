"""Parser for calculated-field formulas.

Grammar:
    formula     = add_expr EOF
    add_expr    = mul_expr (("+" | "-") mul_expr)*
    mul_expr    = power (("*" | "/") power)*
    power       = unary ("^" unary)*          # right-associative
    unary       = "-" unary | primary
    primary     = NUMBER | REF | call | "(" add_expr ")"
    call        = NAME "(" add_expr ("," add_expr)* ")"
    REF         = "{" [QUALIFIER ":"] NAME "}"
    QUALIFIER   = "measure" | "current" | "previous" | "delta" | "avg" DIGITS

Unary minus binds tightest, so "-2^2" is (-2)^2.
"""

import math
import re
from dataclasses import dataclass
from functools import lru_cache

from . import ast
from .errors import FormulaError
from .functions import BUILTINS, Builtin

MAX_NESTING = 64
# Evaluation, unparsing and reference walks recurse once per tree level.
MAX_DEPTH = 200

REFERENCE_RE = re.compile(
    r"(?:(?P<qualifier>measure|current|previous|delta|avg[1-9][0-9]*):)?"
    r"(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
)


@dataclass
class Token:
    type: str
    value: str
    pos: int


class ParseError(FormulaError):
    def __init__(self, msg: str, position: int):
        super().__init__(f"position {position}: {msg}")
        self.reason = msg
        self.position = position


class Lexer:
    """Tokenizer for formula text."""

    TOKEN_PATTERNS = [
        (re.compile(r"\s+"), "WS"),
        (re.compile(r"\d+\.\d*|\.\d+|\d+"), "NUMBER"),
        (re.compile(r"[A-Za-z_][A-Za-z0-9_]*"), "NAME"),
        (re.compile(r"\+"), "PLUS"),
        (re.compile(r"-"), "MINUS"),
        (re.compile(r"\*"), "STAR"),
        (re.compile(r"/"), "SLASH"),
        (re.compile(r"\^"), "CARET"),
        (re.compile(r"\("), "LPAREN"),
        (re.compile(r"\)"), "RPAREN"),
        (re.compile(r","), "COMMA"),
    ]

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.tokens: list[Token] = []
        self._tokenise()

    def _tokenise(self) -> None:
        while self.pos < len(self.source):
            if self.source[self.pos] == "{":
                self._reference()
                continue
            for pattern, ttype in self.TOKEN_PATTERNS:
                m = pattern.match(self.source, self.pos)
                if m:
                    value = m.group(0)
                    if ttype != "WS":
                        self.tokens.append(Token(ttype, value, self.pos))
                    self.pos += len(value)
                    break
            else:
                raise ParseError(f"invalid character: {self.source[self.pos]!r}", self.pos)

        self.tokens.append(Token("EOF", "", self.pos))

    def _reference(self) -> None:
        start = self.pos
        end = self.source.find("}", start + 1)
        nested = self.source.find("{", start + 1)
        if end == -1 or (nested != -1 and nested < end):
            raise ParseError("unterminated variable reference", start)

        body = self.source[start + 1 : end].strip()
        if not body:
            raise ParseError("empty variable reference", start)
        if not REFERENCE_RE.fullmatch(body):
            raise ParseError(
                f"invalid variable reference {{{body}}}: use {{field_name}}, "
                "{measure:name} or {modifier:name} with modifier current, "
                "previous, delta or avgN",
                start,
            )
        self.tokens.append(Token("REF", body, start))
        self.pos = end + 1


class Parser:
    """Recursive descent parser producing an ast.Expr."""

    BINARY = {"PLUS": "+", "MINUS": "-", "STAR": "*", "SLASH": "/", "CARET": "^"}

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[idx]

    def at(self, *types: str) -> bool:
        return self.peek().type in types

    def match(self, *types: str) -> Token | None:
        if self.at(*types):
            tok = self.peek()
            self.pos += 1
            return tok
        return None

    def parse_formula(self) -> ast.Expr:
        if self.at("EOF"):
            raise ParseError("empty expression", 0)

        expr = self.parse_add()

        tok = self.peek()
        if tok.type == "RPAREN":
            raise ParseError("unmatched ')'", tok.pos)
        if tok.type != "EOF":
            raise ParseError(f"expected operator before {tok.value!r}", tok.pos)
        if tree_depth(expr) > MAX_DEPTH:
            raise ParseError(f"expression tree deeper than {MAX_DEPTH} levels", 0)
        return expr

    def parse_add(self) -> ast.Expr:
        left = self.parse_mul()
        while tok := self.match("PLUS", "MINUS"):
            right = self.parse_mul()
            left = ast.BinOp(op=self.BINARY[tok.type], left=left, right=right)
        return left

    def parse_mul(self) -> ast.Expr:
        left = self.parse_power()
        while tok := self.match("STAR", "SLASH"):
            right = self.parse_power()
            left = ast.BinOp(op=self.BINARY[tok.type], left=left, right=right)
        return left

    def parse_power(self) -> ast.Expr:
        operands = [self.parse_unary()]
        while self.match("CARET"):
            operands.append(self.parse_unary())

        expr = operands.pop()
        while operands:
            expr = ast.BinOp(op="^", left=operands.pop(), right=expr)
        return expr

    def parse_unary(self) -> ast.Expr:
        if tok := self.match("MINUS"):
            self._enter(tok)
            operand = self.parse_unary()
            self.depth -= 1
            return ast.UnaryOp(operand=operand)
        return self.parse_primary()

    def parse_primary(self) -> ast.Expr:
        tok = self.peek()

        if self.match("NUMBER"):
            value = float(tok.value)
            if not math.isfinite(value):
                raise ParseError("number out of range", tok.pos)
            return ast.Number(value=value)
        if self.match("REF"):
            return ast.Var(name=tok.value)
        if tok.type == "NAME":
            return self.parse_call()
        if self.match("LPAREN"):
            if self.at("RPAREN"):
                raise ParseError("empty parentheses", self.peek().pos)
            self._enter(tok)
            expr = self.parse_add()
            self.depth -= 1
            if not self.match("RPAREN"):
                raise self._unclosed(tok)
            return expr

        raise self._unexpected(tok)

    def parse_call(self) -> ast.Call:
        name = self.peek()
        self.pos += 1
        builtin = BUILTINS.get(name.value)
        if builtin is None:
            raise ParseError(f"unknown function: {name.value}", name.pos)

        lparen = self.match("LPAREN")
        if lparen is None:
            raise ParseError(f"expected '(' after function {name.value}", self.peek().pos)
        self._enter(lparen)

        args: list[ast.Expr] = []
        if not self.at("RPAREN"):
            args.append(self.parse_add())
            while self.match("COMMA"):
                args.append(self.parse_add())
        self.depth -= 1
        if not self.match("RPAREN"):
            raise self._unclosed(lparen)

        if not builtin.accepts(len(args)):
            raise ParseError(
                f"{name.value}() takes {self._arity(builtin)} argument(s), got {len(args)}",
                name.pos,
            )
        return ast.Call(func=name.value, args=tuple(args))

    def _enter(self, tok: Token) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise ParseError(f"expression nested deeper than {MAX_NESTING} levels", tok.pos)

    def _unclosed(self, lparen: Token) -> ParseError:
        tok = self.peek()
        if tok.type == "EOF":
            return ParseError("unmatched '('", lparen.pos)
        if tok.type == "COMMA":
            return ParseError("unexpected ','", tok.pos)
        return ParseError(f"expected operator before {tok.value!r}", tok.pos)

    def _unexpected(self, tok: Token) -> ParseError:
        prev = self.tokens[self.pos - 1] if self.pos > 0 else None
        prev_is_op = prev is not None and prev.type in self.BINARY
        if tok.type == "EOF":
            if prev_is_op:
                return ParseError(f"trailing operator {prev.value!r}", prev.pos)
            if prev is not None and prev.type == "LPAREN":
                return ParseError("unmatched '('", prev.pos)
            return ParseError("unexpected end of expression", tok.pos)
        if tok.type in self.BINARY:
            if prev_is_op:
                return ParseError(
                    f"consecutive operators {prev.value!r} and {tok.value!r}", tok.pos
                )
            return ParseError(f"operator {tok.value!r} is missing its left operand", tok.pos)
        if prev_is_op:
            return ParseError(f"operator {prev.value!r} is missing its right operand", prev.pos)
        if tok.type == "RPAREN":
            return ParseError("unmatched ')'", tok.pos)
        return ParseError(f"unexpected {tok.value!r}", tok.pos)

    @staticmethod
    def _arity(builtin: Builtin) -> str:
        if builtin.max_args is None:
            return f"at least {builtin.min_args}"
        if builtin.max_args == builtin.min_args:
            return str(builtin.min_args)
        return f"{builtin.min_args} to {builtin.max_args}"


def tree_depth(expr: ast.Expr) -> int:
    """Number of levels in `expr`, counted without recursion."""
    depth = 0
    stack = [(expr, 1)]
    while stack:
        node, level = stack.pop()
        depth = max(depth, level)
        match node:
            case ast.BinOp(left=left, right=right):
                stack.append((left, level + 1))
                stack.append((right, level + 1))
            case ast.UnaryOp(operand=operand):
                stack.append((operand, level + 1))
            case ast.Call(args=args):
                stack.extend((arg, level + 1) for arg in args)
    return depth


@lru_cache(maxsize=2048)
def _parse_cached(source: str) -> ast.Expr:
    lexer = Lexer(source)
    return Parser(lexer.tokens).parse_formula()


def parse(source: str) -> ast.Expr:
    """Parse formula text into an expression tree.

    Trees are memoized by formula text; the same formula is evaluated for
    many subjects.
    """
    if not isinstance(source, str):
        raise ParseError("formula must be a string", 0)
    return _parse_cached(source)

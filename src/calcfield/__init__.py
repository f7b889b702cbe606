"""calcfield: formula engine for calculated custom fields and measures.

Pipeline: parse formula text -> extract references -> build the dependency
graph -> evaluate, or propagate a changed value through its dependents.

Example:
    from calcfield import FormulaDefinition, InMemoryStore, build_graph, recalculate

    graph = build_graph([
        FormulaDefinition(name="bmi", expression="{weight} / ({height} * {height})"),
    ])
    store = InMemoryStore({"patient-1": {"weight": 70, "height": 1.75}})
    result = recalculate("weight", graph, store, "patient-1")
    result.updated  # {'bmi': 22.86}
"""

__version__ = "0.1.0"

from .ast import BinOp, Call, Expr, Number, UnaryOp, Var
from .config import DEFAULT_LIMITS, EngineLimits, LimitExceededError, load_catalog, load_limits
from .definitions import FormulaDefinition, SelfReferenceError
from .errors import EvalError, FormulaError
from .evaluator import (
    DivisionByZero,
    InvalidValue,
    MissingVariable,
    UpstreamFailed,
    evaluate,
    evaluate_definition,
)
from .functions import BUILTINS, DomainError, describe_functions, round_half_up
from .graph import CycleError, DependencyGraph, DuplicateDefinitionError, build_graph
from .parser import Lexer, ParseError, Parser, parse
from .recalc import RecalcResult, recalculate, recalculate_all
from .references import extract_references, rename_references, split_reference
from .store import BooleanValue, InMemoryStore, NumberValue, TextValue, Value, ValueStore
from .templates import (
    FormulaTemplate,
    TemplateNotFoundError,
    apply_template,
    categories,
    get_template,
    list_templates,
)
from .unparse import unparse
from .validation import ValidationResult, check_formula, validate_formula

__all__ = [
    # Parse
    "parse",
    "ParseError",
    "Lexer",
    "Parser",
    "unparse",
    # AST
    "Expr",
    "Number",
    "Var",
    "BinOp",
    "UnaryOp",
    "Call",
    # References
    "extract_references",
    "split_reference",
    "rename_references",
    # Definitions & graph
    "FormulaDefinition",
    "SelfReferenceError",
    "DependencyGraph",
    "build_graph",
    "CycleError",
    "DuplicateDefinitionError",
    # Evaluate
    "evaluate",
    "evaluate_definition",
    "round_half_up",
    "BUILTINS",
    "describe_functions",
    # Errors
    "FormulaError",
    "EvalError",
    "MissingVariable",
    "DivisionByZero",
    "InvalidValue",
    "DomainError",
    "UpstreamFailed",
    # Store
    "ValueStore",
    "Value",
    "NumberValue",
    "TextValue",
    "BooleanValue",
    "InMemoryStore",
    # Recalculate
    "recalculate",
    "recalculate_all",
    "RecalcResult",
    # Validate
    "validate_formula",
    "check_formula",
    "ValidationResult",
    # Config
    "EngineLimits",
    "DEFAULT_LIMITS",
    "LimitExceededError",
    "load_limits",
    "load_catalog",
    # Templates
    "FormulaTemplate",
    "list_templates",
    "get_template",
    "apply_template",
    "categories",
    "TemplateNotFoundError",
]

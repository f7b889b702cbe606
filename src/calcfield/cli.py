"""Command line checks for formula catalogs.

Usage:
    calcfield-check check formulas.yaml
    calcfield-check check formulas.yaml --limits limits.yaml -v
    calcfield-check eval "{weight} / ({height} * {height})" --set weight=70 --set height=1.75
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import DEFAULT_LIMITS, load_catalog, load_limits
from .definitions import FormulaDefinition
from .errors import FormulaError
from .evaluator import evaluate
from .functions import round_half_up
from .graph import build_graph
from .parser import parse


def check_catalog(path: Path, limits, verbose: bool = False) -> int:
    definitions: list[FormulaDefinition] = []
    errors: list[tuple[str, str]] = []

    for i, entry in enumerate(load_catalog(path)):
        label = entry.get("name", f"#{i}")
        try:
            limits.check_expression(str(entry.get("expression", "")))
            defn = FormulaDefinition(**entry)
            limits.check_dependencies(list(defn.dependencies))
        except (FormulaError, ValidationError) as e:
            errors.append((label, str(e)))
            continue
        definitions.append(defn)
        if verbose:
            print(f"  OK    {defn.name}: {', '.join(defn.dependencies) or '(no inputs)'}")

    try:
        graph = build_graph(definitions, limits)
    except FormulaError as e:
        errors.append(("<graph>", str(e)))
        graph = None

    for label, message in errors:
        print(f"  FAIL  {label}: {message}")

    print()
    print(f"  Total: {len(definitions)}/{len(definitions) + len(errors)} formulas valid")
    if graph is not None:
        print(f"  Evaluation order: {' -> '.join(graph.calculated) or '(empty)'}")
        print(f"  Inputs: {', '.join(graph.sources) or '(none)'}")

    return 1 if errors else 0


def _parse_assignment(text: str) -> tuple[str, float]:
    name, sep, value = text.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got {text!r}")
    try:
        return name.strip(), float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None


def eval_formula(expression: str, assignments: list[tuple[str, float]], places: int) -> int:
    try:
        result = round_half_up(evaluate(parse(expression), dict(assignments)), places)
    except FormulaError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(result)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate and evaluate calculated-field formulas")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Validate a YAML catalog of formulas")
    check.add_argument("catalog", type=Path)
    check.add_argument("--limits", type=Path, default=None, help="YAML file of engine limits")

    ev = sub.add_parser("eval", help="Evaluate one formula")
    ev.add_argument("expression")
    ev.add_argument(
        "--set", dest="assignments", action="append", default=[], type=_parse_assignment,
        metavar="NAME=VALUE",
    )
    ev.add_argument("--places", type=int, default=2)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command == "check":
        try:
            limits = load_limits(args.limits) if args.limits else DEFAULT_LIMITS
            return check_catalog(args.catalog, limits, verbose=args.verbose)
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
    return eval_formula(args.expression, args.assignments, args.places)


if __name__ == "__main__":
    sys.exit(main())

"""Exception roots shared by calcfield modules."""


class FormulaError(Exception):
    """Root of authoring-time and runtime formula errors."""


class EvalError(FormulaError):
    """Runtime failure evaluating one formula for one subject.

    The recalculation orchestrator records these per field instead of
    raising them.
    """

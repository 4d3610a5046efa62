"""Pure expression language used by when-clauses, conditions, and computed args."""

from .evaluator import (
    EvalContext,
    evaluate,
    expression_values,
    reify_strings,
    to_text,
    truthy,
)
from .parser import (
    AssignmentError,
    ExpressionSyntaxError,
    Node,
    normalize,
    parse,
    quote,
)

__all__ = [
    "AssignmentError",
    "EvalContext",
    "ExpressionSyntaxError",
    "Node",
    "evaluate",
    "expression_values",
    "normalize",
    "parse",
    "quote",
    "reify_strings",
    "to_text",
    "truthy",
]

"""
Predicate Evaluator - comparisons used by branch nodes.

Numeric operators coerce both sides the way JavaScript's ``Number()`` does;
anything that does not parse becomes NaN, and every NaN comparison is simply
False.
"""

from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, Mapping

from .errors import PredicateEvaluationError
from .models import PredicateExpression, PredicateOperator
from .variables import resolve_variables


_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_HEX_PATTERN = re.compile(r"^0[xX][0-9a-fA-F]+$")


def to_number(value: Any) -> float:
    """Coerce a scalar to float, returning NaN when it is not numeric."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if _NUMBER_PATTERN.match(text):
            return float(text)
        if _HEX_PATTERN.match(text):
            return float(int(text, 16))
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
    return math.nan


def strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion (``True`` is not ``1``)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) == 0
    return False


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return right in left
    if isinstance(left, (list, tuple)):
        return any(strict_equals(item, right) for item in left)
    return False


def _starts_with(left: Any, right: Any) -> bool:
    return isinstance(left, str) and isinstance(right, str) and left.startswith(right)


def _ends_with(left: Any, right: Any) -> bool:
    return isinstance(left, str) and isinstance(right, str) and left.endswith(right)


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    PredicateOperator.EQ.value: strict_equals,
    PredicateOperator.NEQ.value: lambda left, right: not strict_equals(left, right),
    PredicateOperator.GT.value: lambda left, right: to_number(left) > to_number(right),
    PredicateOperator.GTE.value: lambda left, right: to_number(left) >= to_number(right),
    PredicateOperator.LT.value: lambda left, right: to_number(left) < to_number(right),
    PredicateOperator.LTE.value: lambda left, right: to_number(left) <= to_number(right),
    PredicateOperator.CONTAINS.value: _contains,
    PredicateOperator.STARTS_WITH.value: _starts_with,
    PredicateOperator.ENDS_WITH.value: _ends_with,
    PredicateOperator.IS_EMPTY.value: lambda left, _right: is_empty(left),
    PredicateOperator.IS_NOT_EMPTY.value: lambda left, _right: not is_empty(left),
}


def evaluate_predicate(
    expression: PredicateExpression | Mapping[str, Any],
    variables: Mapping[str, Any],
) -> bool:
    """
    Evaluate a comparison expression against the variable bag.

    Args:
        expression: ``{left, operator, right?}``; a plain dict is accepted
        variables: Variable bag used to resolve ``left``

    Returns:
        Boolean result

    Raises:
        VariableResolutionError: if ``left`` references a missing variable
        PredicateEvaluationError: if the expression is malformed or the
            operator is unknown
    """
    if not isinstance(expression, PredicateExpression):
        try:
            expression = PredicateExpression.model_validate(expression)
        except ValueError as e:
            raise PredicateEvaluationError(expression, f"Malformed predicate expression: {e}") from e

    left = resolve_variables(expression.left, variables)

    operator = OPERATORS.get(expression.operator)
    if operator is None:
        raise PredicateEvaluationError(expression, f"Unknown operator: {expression.operator}")

    return bool(operator(left, expression.right))


__all__ = [
    "OPERATORS",
    "evaluate_predicate",
    "is_empty",
    "strict_equals",
    "to_number",
]

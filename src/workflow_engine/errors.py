"""
Engine error taxonomy.

Every error raised while running a workflow derives from WorkflowError and
carries a ``kind`` tag so callers can branch on it without isinstance chains.
"""

from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""

    kind: str = "WorkflowError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class VariableResolutionError(WorkflowError):
    """A ``{{path}}`` reference could not be resolved against the variable bag."""

    kind = "VariableResolutionError"

    def __init__(self, variable: str, message: str):
        super().__init__(message)
        self.variable = variable


class PredicateEvaluationError(WorkflowError):
    """A predicate expression is malformed or uses an unknown operator."""

    kind = "PredicateEvaluationError"

    def __init__(self, expression: Any, message: str):
        super().__init__(message)
        self.expression = expression


class WorkflowExecutionError(WorkflowError):
    """
    A node or the run itself failed.

    Raised for handler-reported failures, unknown node ids, a missing start
    node and unknown node types or execution modes. ``node_id`` is empty for
    run-level failures.
    """

    kind = "WorkflowExecutionError"

    def __init__(self, node_id: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.node_id = node_id
        self.cause = cause


class AdapterError(WorkflowError):
    """An adapter is unknown, rejected its config or input, or failed to run."""

    kind = "AdapterError"

    def __init__(self, adapter_id: str, operation: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.adapter_id = adapter_id
        self.operation = operation
        self.cause = cause


__all__ = [
    "WorkflowError",
    "AdapterError",
    "VariableResolutionError",
    "PredicateEvaluationError",
    "WorkflowExecutionError",
]

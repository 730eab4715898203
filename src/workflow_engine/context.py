"""
Execution Context - the live working set of one run.

Holds the variable bag, the step-log recorder, the injected handlers and the
optional event emitter. One context belongs to exactly one run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from .handlers import ExecutionHandlers
from .models import BaseNode, StepLog, StepStatus, WorkflowDefinition, utc_now
from .observability import get_logger, with_run_context
from .variables import VariableStore


logger = get_logger(__name__)


def safe_emit(emitter: Any, method: str, *args: Any) -> None:
    """Call ``emitter.<method>(*args)``; emitter failures never fail the run."""
    if emitter is None:
        return
    try:
        getattr(emitter, method)(*args)
    except Exception:
        logger.exception("Run emitter call failed", extra={"emitter_method": method})


class StepRecorder:
    """
    Append-only step log for one run.

    Entries are created when a node starts and finalized in place when it
    completes or fails. Every transition is mirrored to the emitter, followed
    by a snapshot of the whole log.
    """

    def __init__(self, emitter: Any = None, existing: Optional[Sequence[StepLog]] = None):
        self.emitter = emitter
        self._logs: List[StepLog] = list(existing or [])
        self._lock = threading.RLock()

    @property
    def logs(self) -> List[StepLog]:
        with self._lock:
            return list(self._logs)

    def snapshot(self) -> List[StepLog]:
        with self._lock:
            return [log.model_copy(deep=True) for log in self._logs]

    def start(self, node: BaseNode) -> StepLog:
        with self._lock:
            entry = StepLog(
                node_id=node.id,
                node_name=node.label,
                node_type=node.type,
                status=StepStatus.RUNNING,
                started_at=utc_now(),
            )
            self._logs.append(entry)
            safe_emit(self.emitter, "emit_step_start", node.id, node.display_name, node.type)
            safe_emit(self.emitter, "emit_logs_update", self.snapshot())
            return entry

    def record_input(self, node: BaseNode, value: Any) -> None:
        with self._lock:
            entry = self._find_running(node.id)
            if entry is not None:
                entry.input = value

    def complete(self, node: BaseNode, output: Any = None) -> None:
        with self._lock:
            entry = self._find_running(node.id)
            if entry is not None:
                entry.status = StepStatus.COMPLETED
                entry.completed_at = utc_now()
                entry.output = output
            safe_emit(self.emitter, "emit_step_complete", node.id, output)
            safe_emit(self.emitter, "emit_logs_update", self.snapshot())

    def fail(self, node: BaseNode, error: str) -> None:
        with self._lock:
            entry = self._find_running(node.id)
            if entry is not None:
                entry.status = StepStatus.FAILED
                entry.completed_at = utc_now()
                entry.error = error
            safe_emit(self.emitter, "emit_step_error", node.id, error)
            safe_emit(self.emitter, "emit_logs_update", self.snapshot())

    def _find_running(self, node_id: str) -> Optional[StepLog]:
        # Newest first: a continued run may carry a stale running entry for the same node
        for entry in reversed(self._logs):
            if entry.node_id == node_id and entry.status == StepStatus.RUNNING:
                return entry
        return None


@dataclass
class ExecutionContext:
    """Per-run state shared by the scheduler and node executors."""

    workflow_id: str
    run_id: str
    definition: WorkflowDefinition
    variables: VariableStore
    handlers: ExecutionHandlers
    recorder: StepRecorder
    emitter: Any = None
    extra: dict = field(default_factory=dict)

    @property
    def step_logs(self) -> List[StepLog]:
        return self.recorder.logs

    def log_context(self, node: Optional[BaseNode] = None) -> dict:
        """Logging ``extra`` for this run, optionally scoped to a node."""
        return with_run_context(
            workflow_id=self.workflow_id,
            run_id=self.run_id,
            node_id=node.id if node else None,
            node_type=node.type if node else None,
            **self.extra,
        )


__all__ = [
    "ExecutionContext",
    "StepRecorder",
    "safe_emit",
]

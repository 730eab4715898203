"""
Workflow execution events for real-time progress reporting.

The engine talks to a RunEmitter. Hosts that want a process-wide pub/sub
channel (a UI, a websocket bridge) can use the WorkflowEventBus together with
``create_run_emitter``; listeners subscribe to event names such as
``"step:start"`` and receive the run id first.

Emitter calls are made synchronously from whichever worker thread ran the
node.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .models import StepLog
from .observability import get_logger


logger = get_logger(__name__)


EVENT_STEP_START = "step:start"
EVENT_STEP_COMPLETE = "step:complete"
EVENT_STEP_ERROR = "step:error"
EVENT_RUN_START = "run:start"
EVENT_RUN_COMPLETE = "run:complete"
EVENT_RUN_ERROR = "run:error"
EVENT_LOGS_UPDATE = "logs:update"

EVENT_NAMES = (
    EVENT_STEP_START,
    EVENT_STEP_COMPLETE,
    EVENT_STEP_ERROR,
    EVENT_RUN_START,
    EVENT_RUN_COMPLETE,
    EVENT_RUN_ERROR,
    EVENT_LOGS_UPDATE,
)

Listener = Callable[..., None]


@runtime_checkable
class RunEmitter(Protocol):
    """Fire-and-forget progress sink for one run."""

    def emit_run_start(self) -> None: ...

    def emit_step_start(self, node_id: str, label: str, node_type: str) -> None: ...

    def emit_step_complete(self, node_id: str, output: Any = None) -> None: ...

    def emit_step_error(self, node_id: str, error: str) -> None: ...

    def emit_logs_update(self, step_logs: Sequence[StepLog]) -> None: ...

    def emit_run_complete(self, status: str) -> None: ...

    def emit_run_error(self, error: str) -> None: ...


class WorkflowEventBus:
    """
    Thread-safe named-event dispatcher.

    Usage:
        bus = WorkflowEventBus()
        bus.on("step:start", lambda run_id, node_id, name, node_type: ...)
        bus.emit("step:start", "run-1", "n1", "Mint", "transaction")
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, event: str, listener: Listener) -> "WorkflowEventBus":
        """Subscribe ``listener`` to ``event``."""
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown workflow event: {event}")
        with self._lock:
            self._listeners[event].append(listener)
        return self

    def off(self, event: str, listener: Listener) -> "WorkflowEventBus":
        """Unsubscribe ``listener``; unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners.get(event, []):
                self._listeners[event].remove(listener)
        return self

    def once(self, event: str, listener: Listener) -> "WorkflowEventBus":
        """Subscribe ``listener`` for a single delivery."""

        def _wrapper(*args: Any) -> None:
            self.off(event, _wrapper)
            listener(*args)

        return self.on(event, _wrapper)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def emit(self, event: str, *args: Any) -> bool:
        """
        Deliver ``args`` to every listener of ``event``.

        A failing listener is logged and does not stop delivery to the rest.

        Returns:
            True if the event had listeners
        """
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("Workflow event listener failed", extra={"event": event})
        return bool(listeners)


# Process-wide bus
workflow_events = WorkflowEventBus()


class BusRunEmitter:
    """RunEmitter that publishes onto a WorkflowEventBus, tagged with the run id."""

    def __init__(self, run_id: str, bus: Optional[WorkflowEventBus] = None):
        self.run_id = run_id
        self.bus = bus or workflow_events

    def emit_run_start(self) -> None:
        self.bus.emit(EVENT_RUN_START, self.run_id)

    def emit_step_start(self, node_id: str, label: str, node_type: str) -> None:
        self.bus.emit(EVENT_STEP_START, self.run_id, node_id, label, node_type)

    def emit_step_complete(self, node_id: str, output: Any = None) -> None:
        self.bus.emit(EVENT_STEP_COMPLETE, self.run_id, node_id, output)

    def emit_step_error(self, node_id: str, error: str) -> None:
        self.bus.emit(EVENT_STEP_ERROR, self.run_id, node_id, error)

    def emit_logs_update(self, step_logs: Sequence[StepLog]) -> None:
        self.bus.emit(EVENT_LOGS_UPDATE, self.run_id, list(step_logs))

    def emit_run_complete(self, status: str) -> None:
        self.bus.emit(EVENT_RUN_COMPLETE, self.run_id, status)

    def emit_run_error(self, error: str) -> None:
        self.bus.emit(EVENT_RUN_ERROR, self.run_id, error)


def create_run_emitter(run_id: str, bus: Optional[WorkflowEventBus] = None) -> BusRunEmitter:
    """Scoped emitter for one run (defaults to the process-wide bus)."""
    return BusRunEmitter(run_id, bus)


__all__ = [
    "EVENT_NAMES",
    "EVENT_STEP_START",
    "EVENT_STEP_COMPLETE",
    "EVENT_STEP_ERROR",
    "EVENT_RUN_START",
    "EVENT_RUN_COMPLETE",
    "EVENT_RUN_ERROR",
    "EVENT_LOGS_UPDATE",
    "RunEmitter",
    "WorkflowEventBus",
    "BusRunEmitter",
    "workflow_events",
    "create_run_emitter",
]

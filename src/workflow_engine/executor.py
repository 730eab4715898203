"""
Workflow Executor - run controller with four execution modes.

Modes:
- full: execute from the start node until the frontier is empty
- single: execute one node in isolation, ignoring its edges
- upto: execute from the start node, stopping right after the target node
- resume: continue from a given node with extra variables merged in

Every mode returns a WorkflowRun. Failures are captured in the run record and
never raised to the caller.
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .config import Settings, get_settings
from .context import ExecutionContext, StepRecorder, safe_emit
from .errors import WorkflowError, WorkflowExecutionError
from .handlers import ExecutionHandlers
from .models import (
    RunStatus,
    StepLog,
    StepStatus,
    WorkflowDefinition,
    WorkflowRun,
    parse_workflow,
    utc_now,
)
from .nodes import NodeRunner
from .observability import get_logger, with_run_context
from .scheduler import StepScheduler
from .variables import VariableStore


logger = get_logger(__name__)


# ============================================================================
# Execution modes
# ============================================================================

class _Mode(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FullMode(_Mode):
    type: Literal["full"] = "full"


class SingleMode(_Mode):
    type: Literal["single"] = "single"
    node_id: str = Field(..., alias="nodeId")


class UptoMode(_Mode):
    type: Literal["upto"] = "upto"
    node_id: str = Field(..., alias="nodeId")


class ResumeMode(_Mode):
    type: Literal["resume"] = "resume"
    from_node_id: str = Field(..., alias="fromNodeId")
    variables: Optional[Dict[str, Any]] = None


ExecutionMode = Annotated[
    Union[FullMode, SingleMode, UptoMode, ResumeMode],
    Field(discriminator="type"),
]

_MODE_ADAPTER: TypeAdapter = TypeAdapter(ExecutionMode)
MODE_TYPES = ("full", "single", "upto", "resume")


def parse_mode(mode: Any) -> Union[FullMode, SingleMode, UptoMode, ResumeMode]:
    """
    Parse an execution mode from a dict or model.

    Raises:
        WorkflowExecutionError: for unknown or malformed modes
    """
    if isinstance(mode, (FullMode, SingleMode, UptoMode, ResumeMode)):
        return mode
    if isinstance(mode, str):
        mode = {"type": mode}
    mode_type = mode.get("type") if isinstance(mode, Mapping) else getattr(mode, "type", None)
    if mode_type not in MODE_TYPES:
        raise WorkflowExecutionError("", f"Unknown execution mode: {mode_type}")
    try:
        return _MODE_ADAPTER.validate_python(mode)
    except ValidationError as e:
        raise WorkflowExecutionError("", f"Invalid execution mode '{mode_type}': {e}") from e


# ============================================================================
# Executor
# ============================================================================

class WorkflowExecutor:
    """
    Workflow run controller.

    Usage:
        executor = WorkflowExecutor(handlers=my_handlers)
        run = executor.run(definition, workflow_id="wf-1")
        run = executor.run_upto(definition, "n2", workflow_id="wf-1")
        run = executor.resume(definition, "n3", variables=previous.variables)
    """

    def __init__(
        self,
        handlers: ExecutionHandlers,
        runner: Optional[NodeRunner] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize executor.

        Args:
            handlers: Host implementation of the external operations
            runner: Node runner (defaults to the built-in executors)
            settings: Engine settings (defaults to the global settings)
        """
        self._handlers = handlers
        self._runner = runner or NodeRunner()
        self._settings = settings or get_settings()

    # Convenience wrappers ---------------------------------------------------

    def run(self, definition: WorkflowDefinition | Dict[str, Any], **kwargs: Any) -> WorkflowRun:
        """Execute the whole workflow from its start node."""
        return self.execute(definition, FullMode(), **kwargs)

    def run_single(self, definition: WorkflowDefinition | Dict[str, Any], node_id: str, **kwargs: Any) -> WorkflowRun:
        """Execute only ``node_id``."""
        return self.execute(definition, SingleMode(node_id=node_id), **kwargs)

    def run_upto(self, definition: WorkflowDefinition | Dict[str, Any], node_id: str, **kwargs: Any) -> WorkflowRun:
        """Execute from the start node up to and including ``node_id``."""
        return self.execute(definition, UptoMode(node_id=node_id), **kwargs)

    def resume(
        self,
        definition: WorkflowDefinition | Dict[str, Any],
        from_node_id: str,
        variables: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> WorkflowRun:
        """Continue execution at ``from_node_id`` with ``variables`` merged into the bag."""
        return self.execute(definition, ResumeMode(from_node_id=from_node_id, variables=variables), **kwargs)

    # Main entry point -------------------------------------------------------

    def execute(
        self,
        definition: WorkflowDefinition | Dict[str, Any],
        mode: Any = None,
        workflow_id: str = "unnamed",
        run_id: Optional[str] = None,
        initial_variables: Optional[Mapping[str, Any]] = None,
        existing_step_logs: Optional[Sequence[StepLog]] = None,
        emitter: Any = None,
    ) -> WorkflowRun:
        """
        Execute a workflow in the given mode.

        Args:
            definition: Workflow definition or JSON dict
            mode: FullMode/SingleMode/UptoMode/ResumeMode, a mode dict such as
                ``{"type": "upto", "nodeId": "n2"}``, or None for a full run
            workflow_id: Workflow ID recorded on the run
            run_id: Run ID (generated when omitted)
            initial_variables: Caller-seeded variables (e.g. an ``env`` namespace)
            existing_step_logs: Step logs of a previous run to continue
            emitter: Optional RunEmitter for live progress events

        Returns:
            WorkflowRun with status ``completed`` or ``failed``
        """
        run_id = run_id or str(uuid.uuid4())
        started_at = utc_now()
        extra = with_run_context(workflow_id=workflow_id, run_id=run_id)

        safe_emit(emitter, "emit_run_start")

        try:
            recorder = StepRecorder(emitter, self._coerce_step_logs(existing_step_logs))
        except ValidationError as e:
            logger.error("Existing step logs are invalid", extra=extra)
            return self._failed_run(
                run_id, workflow_id, started_at, f"Invalid step logs: {e}",
                VariableStore(), StepRecorder(emitter), emitter,
            )

        try:
            variables = VariableStore(initial_variables)
        except (TypeError, ValueError) as e:
            logger.error("Initial variables are invalid", extra=extra)
            return self._failed_run(
                run_id, workflow_id, started_at, f"Invalid initial variables: {e}",
                VariableStore(), recorder, emitter,
            )

        try:
            if isinstance(definition, Mapping):
                definition = parse_workflow(dict(definition))
        except ValidationError as e:
            logger.error("Workflow definition is invalid", extra=extra)
            return self._failed_run(
                run_id, workflow_id, started_at, f"Invalid workflow definition: {e}",
                variables, recorder, emitter,
            )

        self._apply_defaults(definition, variables)
        ctx = ExecutionContext(
            workflow_id=workflow_id,
            run_id=run_id,
            definition=definition,
            variables=variables,
            handlers=self._handlers,
            recorder=recorder,
            emitter=emitter,
        )

        try:
            parsed_mode = parse_mode(mode if mode is not None else FullMode())
            logger.info(f"Workflow run started ({parsed_mode.type})", extra=extra)
            self._dispatch(parsed_mode, ctx)
        except WorkflowError as e:
            logger.error(f"Workflow run failed: {e.message}", extra=extra)
            return self._failed_run(
                run_id, workflow_id, started_at, e.message, ctx.variables, ctx.recorder, emitter
            )
        except Exception as e:
            logger.error("Unexpected workflow engine error", extra=extra, exc_info=True)
            return self._failed_run(
                run_id, workflow_id, started_at, f"Unexpected error: {e}", ctx.variables, ctx.recorder, emitter
            )

        logger.info("Workflow run completed", extra=extra)
        run = WorkflowRun(
            id=run_id,
            workflow_id=workflow_id,
            status=RunStatus.COMPLETED,
            variables=ctx.variables.to_dict(),
            step_logs=ctx.recorder.logs,
            started_at=started_at,
            completed_at=utc_now(),
        )
        safe_emit(emitter, "emit_run_complete", RunStatus.COMPLETED.value)
        return run

    # Internals --------------------------------------------------------------

    def _dispatch(self, mode: Any, ctx: ExecutionContext) -> None:
        if isinstance(mode, FullMode):
            start = self._require_start_node(ctx.definition)
            self._scheduler(ctx).run([start])
        elif isinstance(mode, SingleMode):
            node = ctx.definition.get_node(mode.node_id)
            if node is None:
                raise WorkflowExecutionError(mode.node_id, "Node not found")
            self._runner.run(node, ctx)
        elif isinstance(mode, UptoMode):
            start = self._require_start_node(ctx.definition)
            reached = self._scheduler(ctx).run([start], stop_after=mode.node_id)
            if not reached:
                logger.info(
                    f"Target node {mode.node_id} was not reached",
                    extra=ctx.log_context(),
                )
        elif isinstance(mode, ResumeMode):
            if mode.variables:
                ctx.variables.update(mode.variables)
            self._scheduler(ctx).run([mode.from_node_id])
        else:
            raise WorkflowExecutionError("", f"Unknown execution mode: {getattr(mode, 'type', mode)}")

    def _scheduler(self, ctx: ExecutionContext) -> StepScheduler:
        return StepScheduler(
            ctx,
            self._runner,
            max_workers=self._settings.max_parallel_nodes,
            warn_on_revisit=self._settings.warn_on_revisit,
        )

    @staticmethod
    def _require_start_node(definition: WorkflowDefinition) -> str:
        starts = definition.get_start_nodes()
        if not starts:
            raise WorkflowExecutionError("", "No start node found in workflow")
        if len(starts) > 1:
            ids = ", ".join(node.id for node in starts)
            raise WorkflowExecutionError("", f"Workflow has multiple start nodes: {ids}")
        return starts[0].id

    @staticmethod
    def _coerce_step_logs(step_logs: Optional[Sequence[Any]]) -> List[StepLog]:
        return [
            StepLog.model_validate(log) if isinstance(log, Mapping) else log
            for log in step_logs or []
        ]

    @staticmethod
    def _apply_defaults(definition: WorkflowDefinition, store: VariableStore) -> None:
        """Seed declared defaults (including an explicit null) for names still absent."""
        for variable in definition.variables or []:
            if "default_value" in variable.model_fields_set:
                store.setdefault(variable.name, variable.default_value)

    @staticmethod
    def _failed_run(
        run_id: str,
        workflow_id: str,
        started_at: str,
        error: str,
        variables: VariableStore,
        recorder: StepRecorder,
        emitter: Any,
    ) -> WorkflowRun:
        run = WorkflowRun(
            id=run_id,
            workflow_id=workflow_id,
            status=RunStatus.FAILED,
            variables=variables.to_dict(),
            step_logs=recorder.logs,
            error=error,
            started_at=started_at,
            completed_at=utc_now(),
        )
        safe_emit(emitter, "emit_run_error", error)
        return run


# ============================================================================
# Resume helpers
# ============================================================================

def _as_run(run: WorkflowRun | Mapping[str, Any]) -> WorkflowRun:
    if isinstance(run, WorkflowRun):
        return run
    return WorkflowRun.model_validate(run)


def can_resume_workflow(run: WorkflowRun | Mapping[str, Any]) -> bool:
    """True when the run is paused or failed."""
    return _as_run(run).status in (RunStatus.PAUSED, RunStatus.FAILED)


def get_resume_node_id(
    run: WorkflowRun | Mapping[str, Any],
    definition: WorkflowDefinition | Mapping[str, Any],
) -> Optional[str]:
    """
    Node to resume a failed or paused run from.

    Scans the step logs backwards for the most recent completed node that has
    an outgoing edge and returns the target of its first edge. Falls back to
    the start node when there are no step logs or nothing qualifies.
    """
    run = _as_run(run)
    if isinstance(definition, Mapping):
        definition = parse_workflow(dict(definition))

    start = definition.find_start_node()
    start_id = start.id if start else None

    for log in reversed(run.step_logs):
        if log.status != StepStatus.COMPLETED:
            continue
        outgoing = definition.get_outgoing_edges(log.node_id)
        if outgoing:
            return outgoing[0].target_id

    return start_id


__all__ = [
    "FullMode",
    "SingleMode",
    "UptoMode",
    "ResumeMode",
    "ExecutionMode",
    "parse_mode",
    "WorkflowExecutor",
    "can_resume_workflow",
    "get_resume_node_id",
]

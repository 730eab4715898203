"""
Workflow Engine - directed-graph execution for blockchain developer workflows.

This package provides:
- WorkflowDefinition: JSON structure describing a workflow graph
- WorkflowExecutor: run controller with full/single/upto/resume modes
- ExecutionHandlers: host interface for transactions, scripts and adapters
- WorkflowEventBus: live progress events

Nodes that share a frontier run concurrently on worker threads; the variable
bag and step log are guarded so concurrent writes stay consistent.
"""

from .errors import (
    AdapterError,
    PredicateEvaluationError,
    VariableResolutionError,
    WorkflowError,
    WorkflowExecutionError,
)
from .models import (
    NodeType,
    RunStatus,
    StepLog,
    StepStatus,
    WorkflowDefinition,
    WorkflowEdge,
    WorkflowNode,
    WorkflowRun,
    WorkflowVariable,
    create_default_workflow,
    parse_workflow,
)
from .variables import VariableStore, resolve_record, resolve_variables, slugify
from .predicates import evaluate_predicate
from .handlers import CallbackHandlers, ExecutionHandlers
from .events import RunEmitter, WorkflowEventBus, create_run_emitter, workflow_events
from .executor import (
    FullMode,
    ResumeMode,
    SingleMode,
    UptoMode,
    WorkflowExecutor,
    can_resume_workflow,
    get_resume_node_id,
)
from .adapters import (
    AdapterOperation,
    AdapterRegistry,
    WorkflowAdapter,
    get_adapter_registry,
    register_adapter,
)
from .validation import ValidationIssue, validate_workflow
from .extraction import apply_extractions, extract_script_variables

__version__ = "0.1.0"

__all__ = [
    # Errors
    "WorkflowError",
    "VariableResolutionError",
    "PredicateEvaluationError",
    "WorkflowExecutionError",
    "AdapterError",
    # Models
    "NodeType",
    "RunStatus",
    "StepStatus",
    "StepLog",
    "WorkflowDefinition",
    "WorkflowEdge",
    "WorkflowNode",
    "WorkflowRun",
    "WorkflowVariable",
    "create_default_workflow",
    "parse_workflow",
    # Variables and predicates
    "VariableStore",
    "resolve_variables",
    "resolve_record",
    "slugify",
    "evaluate_predicate",
    # External interfaces
    "ExecutionHandlers",
    "CallbackHandlers",
    "RunEmitter",
    "WorkflowEventBus",
    "create_run_emitter",
    "workflow_events",
    # Executor
    "WorkflowExecutor",
    "FullMode",
    "SingleMode",
    "UptoMode",
    "ResumeMode",
    "can_resume_workflow",
    "get_resume_node_id",
    # Supplements
    "AdapterOperation",
    "AdapterRegistry",
    "WorkflowAdapter",
    "get_adapter_registry",
    "register_adapter",
    "ValidationIssue",
    "validate_workflow",
    "apply_extractions",
    "extract_script_variables",
]

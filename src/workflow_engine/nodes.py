"""
Node Executors - one executor per node type.

Each executor resolves its inputs against the variable bag, calls the matching
external handler (or computes purely), and publishes its result under the
node id, the slugified label and the optional output variable.

NodeRunner wraps an executor with step logging and error normalization and
reports which successors should run next.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .context import ExecutionContext
from .errors import WorkflowError, WorkflowExecutionError
from .handlers import normalize_result
from .models import (
    AdapterNode,
    BaseNode,
    LoggingNode,
    NodeType,
    PredicateNode,
    ScriptNode,
    TransactionNode,
    TransformNode,
)
from .observability import get_logger
from .predicates import evaluate_predicate
from .variables import slugify, to_pretty_json, to_text


logger = get_logger(__name__)

LOG_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class NodeOutcome:
    """Result of running a single node."""
    node_id: str
    output: Any = None
    successors: List[str] = field(default_factory=list)


def result_keys(node: BaseNode) -> List[str]:
    """The two bag keys every node result is published under."""
    return [f"{node.id}.result", f"{slugify(node.display_name)}.result"]


def publish_result(
    ctx: ExecutionContext,
    node: BaseNode,
    result: Any,
    output_variable: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Write ``result`` into the bag as one atomic update."""
    patch: Dict[str, Any] = dict(extra or {})
    if output_variable:
        patch[output_variable] = result
    for key in result_keys(node):
        patch[key] = result
    ctx.variables.apply(patch)


def call_handler(node: BaseNode, operation: str, call: Callable[[], Any]) -> Dict[str, Any]:
    """
    Invoke a handler and normalize its result.

    Raises:
        WorkflowExecutionError: if the handler raises, returns an unsupported
            value, or reports ``success: false``
    """
    try:
        result = normalize_result(call())
    except Exception as e:
        raise WorkflowExecutionError(node.id, f"{operation} execution failed: {e}", cause=e) from e

    if not result.get("success"):
        reason = result.get("error") or f"{operation} failed"
        raise WorkflowExecutionError(node.id, f"{operation} execution failed: {reason}")
    return result


# ============================================================================
# Executors
# ============================================================================

class NodeExecutor(ABC):
    """Base class for node executors."""

    node_type: str = ""
    # Start nodes are pass-through markers and leave no trace in the step log
    records_step: bool = True

    @abstractmethod
    def execute(self, node: BaseNode, ctx: ExecutionContext) -> Any:
        """
        Execute ``node`` and publish its result.

        Returns:
            The node output recorded in the step log
        """

    def successors(self, node: BaseNode, output: Any, ctx: ExecutionContext) -> List[str]:
        """Node ids to schedule next; follows every outgoing edge by default."""
        return [edge.target_id for edge in ctx.definition.get_outgoing_edges(node.id)]


class StartExecutor(NodeExecutor):
    node_type = NodeType.START.value
    records_step = False

    def execute(self, node, ctx):
        return None


class EndExecutor(NodeExecutor):
    node_type = NodeType.END.value

    def execute(self, node, ctx):
        return None

    def successors(self, node, output, ctx):
        return []


class TransactionExecutor(NodeExecutor):
    node_type = NodeType.TRANSACTION.value

    def execute(self, node: TransactionNode, ctx):
        config = node.config
        args = ctx.variables.resolve_record(config.args)
        ctx.recorder.record_input(node, {"transactionId": config.transaction_id, "walletId": config.wallet_id, "args": args})

        result = call_handler(
            node,
            "Transaction",
            lambda: ctx.handlers.execute_transaction(config.transaction_id, config.wallet_id, args),
        )
        publish_result(ctx, node, result, config.output_variable)
        return result


class ScriptExecutor(NodeExecutor):
    """
    Runs a saved script through the host.

    ``extractions`` on the node config are metadata for the host; the engine
    does not apply them (see ``workflow_engine.extraction``).
    """

    node_type = NodeType.SCRIPT.value

    def execute(self, node: ScriptNode, ctx):
        config = node.config
        flags = ctx.variables.resolve_record(config.flags)
        ctx.recorder.record_input(node, {"scriptId": config.script_id, "flags": flags})

        result = call_handler(
            node,
            "Script",
            lambda: ctx.handlers.execute_script(config.script_id, flags, config.env_var_keys),
        )
        publish_result(ctx, node, result, config.output_variable)
        return result


class PredicateExecutor(NodeExecutor):
    node_type = NodeType.PREDICATE.value

    def execute(self, node: PredicateNode, ctx):
        result = ctx.variables.read(lambda bag: evaluate_predicate(node.config.expression, bag))
        publish_result(ctx, node, result)
        return result

    def successors(self, node, output, ctx):
        # Only the "true"/"false" handles are conditional; any other edge is always followed
        skipped = "false" if output is True else "true"
        return [
            edge.target_id
            for edge in ctx.definition.get_outgoing_edges(node.id)
            if edge.source_handle != skipped
        ]


class AdapterExecutor(NodeExecutor):
    node_type = NodeType.ADAPTER.value

    def execute(self, node: AdapterNode, ctx):
        config = node.config
        resolved_config = ctx.variables.resolve(config.config)
        resolved_input = ctx.variables.resolve_record(config.input_mappings)
        ctx.recorder.record_input(
            node,
            {"adapterId": config.adapter_id, "operation": config.operation, "input": resolved_input},
        )

        result = call_handler(
            node,
            "Adapter",
            lambda: ctx.handlers.execute_adapter(
                config.adapter_id,
                config.operation,
                resolved_config,
                resolved_input,
            ),
        )
        data = result.get("data")
        publish_result(ctx, node, data, config.output_variable)
        return data


class TransformExecutor(NodeExecutor):
    """Evaluates each mapping expression into its own output variable."""

    node_type = NodeType.TRANSFORM.value

    def execute(self, node: TransformNode, ctx):
        values = {}
        resolved = []
        for mapping in node.config.mappings:
            value = ctx.variables.resolve(mapping.expression)
            values[mapping.output_variable] = value
            resolved.append(value)

        result = resolved[0] if len(resolved) == 1 else resolved
        publish_result(ctx, node, result, extra=values)
        return result


class LoggingExecutor(NodeExecutor):
    node_type = NodeType.LOGGING.value

    def execute(self, node: LoggingNode, ctx):
        resolved = ctx.variables.resolve(node.config.message)
        if isinstance(resolved, (dict, list)):
            message = to_pretty_json(resolved)
        else:
            message = to_text(resolved)

        logger.log(
            LOG_LEVELS.get(node.config.level, logging.INFO),
            message,
            extra=ctx.log_context(node),
        )
        publish_result(ctx, node, message)
        return message


DEFAULT_EXECUTORS: Dict[str, NodeExecutor] = {
    executor.node_type: executor
    for executor in (
        StartExecutor(),
        EndExecutor(),
        TransactionExecutor(),
        ScriptExecutor(),
        PredicateExecutor(),
        AdapterExecutor(),
        TransformExecutor(),
        LoggingExecutor(),
    )
}


# ============================================================================
# Runner
# ============================================================================

class NodeRunner:
    """
    Runs one node with step logging.

    Usage:
        runner = NodeRunner()
        outcome = runner.run(node, ctx)
        next_ids = outcome.successors
    """

    def __init__(self, executors: Optional[Dict[str, NodeExecutor]] = None):
        self._executors = dict(DEFAULT_EXECUTORS)
        if executors:
            self._executors.update(executors)

    def register_executor(self, executor: NodeExecutor) -> None:
        """Register or replace the executor for ``executor.node_type``."""
        self._executors[executor.node_type] = executor

    def get_executor(self, node_type: str) -> Optional[NodeExecutor]:
        return self._executors.get(node_type)

    def run(self, node: BaseNode, ctx: ExecutionContext) -> NodeOutcome:
        """
        Execute ``node`` and compute its successors.

        Raises:
            WorkflowError: on any node failure, after the step log entry has
                been marked failed
        """
        executor = self._executors.get(node.type)
        if executor is None:
            raise WorkflowExecutionError(node.id, f"Unknown node type: {node.type}")

        extra = ctx.log_context(node)
        if executor.records_step:
            ctx.recorder.start(node)
        logger.debug(f"Executing node: {node.id} ({node.type})", extra=extra)

        try:
            output = executor.execute(node, ctx)
            successors = executor.successors(node, output, ctx)
        except WorkflowError as e:
            logger.error(f"Node {node.id} failed: {e.message}", extra=extra)
            if executor.records_step:
                ctx.recorder.fail(node, e.message)
            raise
        except Exception as e:
            logger.error(f"Unexpected error in node {node.id}", extra=extra, exc_info=True)
            error = WorkflowExecutionError(node.id, f"Unexpected error: {e}", cause=e)
            if executor.records_step:
                ctx.recorder.fail(node, error.message)
            raise error from e

        if executor.records_step:
            ctx.recorder.complete(node, output)
        logger.debug(f"Node {node.id} completed", extra=extra)

        return NodeOutcome(node_id=node.id, output=output, successors=successors)


__all__ = [
    "NodeOutcome",
    "NodeExecutor",
    "StartExecutor",
    "EndExecutor",
    "TransactionExecutor",
    "ScriptExecutor",
    "PredicateExecutor",
    "AdapterExecutor",
    "TransformExecutor",
    "LoggingExecutor",
    "DEFAULT_EXECUTORS",
    "NodeRunner",
    "call_handler",
    "publish_result",
    "result_keys",
]

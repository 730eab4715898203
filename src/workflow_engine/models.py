"""
Workflow Models - JSON structures for workflow definitions and runs.

These models match the JSON the desktop app stores for a workflow: camelCase
keys on the wire (``sourceId``, ``transactionId``), snake_case attributes in
Python. Both spellings are accepted on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# Enums
# ============================================================================

class NodeType(str, Enum):
    """Node type tags."""
    START = "start"
    END = "end"
    TRANSACTION = "transaction"
    SCRIPT = "script"
    PREDICATE = "predicate"
    ADAPTER = "adapter"
    TRANSFORM = "transform"
    LOGGING = "logging"


class PredicateOperator(str, Enum):
    """Comparison operators understood by predicate nodes."""
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"


class StepStatus(str, Enum):
    """Status of a single step log entry."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(str, Enum):
    """Overall workflow run status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PAUSED = "paused"


# ============================================================================
# Variables and predicates
# ============================================================================

class WorkflowVariable(_Model):
    """A workflow-level variable declaration with an optional default."""

    id: Optional[str] = None
    name: str = Field(..., description="Variable name in the bag")
    type: Literal["string", "number", "boolean", "object", "array"] = "string"
    default_value: Optional[Any] = Field(None, alias="defaultValue")
    description: Optional[str] = None


class PredicateExpression(_Model):
    """
    Comparison evaluated by a predicate node.

    ``left`` is resolved through the variable resolver, ``right`` is a literal.
    The operator is kept as a plain string so an unknown operator surfaces as a
    PredicateEvaluationError at run time rather than a parse failure.
    """

    left: str
    operator: str
    right: Optional[Union[bool, int, float, str]] = None


# ============================================================================
# Node configs
# ============================================================================

class TransactionNodeConfig(_Model):
    transaction_id: str = Field("", alias="transactionId")
    wallet_id: Optional[str] = Field(None, alias="walletId")
    args: Optional[Dict[str, str]] = None
    output_variable: Optional[str] = Field(None, alias="outputVariable")


class ExtractionRule(_Model):
    """Regex rule that pulls a named value out of script output."""

    name: str
    pattern: str
    match_group: int = Field(1, alias="matchGroup")
    type: Literal["string", "number", "boolean", "json"] = "string"


class ScriptNodeConfig(_Model):
    script_id: str = Field("", alias="scriptId")
    flags: Optional[Dict[str, str]] = None
    env_var_keys: Optional[List[str]] = Field(None, alias="envVarKeys")
    output_variable: Optional[str] = Field(None, alias="outputVariable")
    extractions: Optional[List[ExtractionRule]] = None


class PredicateNodeConfig(_Model):
    expression: PredicateExpression


class AdapterNodeConfig(_Model):
    adapter_id: str = Field(..., alias="adapterId")
    operation: str
    config: Dict[str, Any] = Field(default_factory=dict)
    input_mappings: Optional[Dict[str, str]] = Field(None, alias="inputMappings")
    output_variable: Optional[str] = Field(None, alias="outputVariable")


class TransformMapping(_Model):
    expression: str
    output_variable: str = Field(..., alias="outputVariable")


class TransformNodeConfig(_Model):
    mappings: List[TransformMapping] = Field(default_factory=list)


class LoggingNodeConfig(_Model):
    message: str
    level: Literal["info", "warn", "error"] = "info"


# ============================================================================
# Nodes
# ============================================================================

class NodePosition(_Model):
    """Node position on the canvas."""
    x: float = 0
    y: float = 0


class BaseNode(_Model):
    """Fields shared by every node type."""

    id: str = Field(..., description="Node ID (unique within workflow)")
    label: Optional[str] = Field(None, description="Display name, also used for the result alias")
    position: NodePosition = Field(default_factory=NodePosition)

    @property
    def display_name(self) -> str:
        return self.label or self.type


class StartNode(BaseNode):
    type: Literal["start"] = "start"


class EndNode(BaseNode):
    type: Literal["end"] = "end"
    status: Optional[Literal["success", "failure"]] = None


class TransactionNode(BaseNode):
    type: Literal["transaction"] = "transaction"
    config: TransactionNodeConfig


class ScriptNode(BaseNode):
    type: Literal["script"] = "script"
    config: ScriptNodeConfig


class PredicateNode(BaseNode):
    type: Literal["predicate"] = "predicate"
    config: PredicateNodeConfig


class AdapterNode(BaseNode):
    type: Literal["adapter"] = "adapter"
    config: AdapterNodeConfig


class TransformNode(BaseNode):
    type: Literal["transform"] = "transform"
    config: TransformNodeConfig


class LoggingNode(BaseNode):
    type: Literal["logging"] = "logging"
    config: LoggingNodeConfig


WorkflowNode = Annotated[
    Union[
        StartNode,
        EndNode,
        TransactionNode,
        ScriptNode,
        PredicateNode,
        AdapterNode,
        TransformNode,
        LoggingNode,
    ],
    Field(discriminator="type"),
]


class WorkflowEdge(_Model):
    """
    Directed connection between two nodes.

    ``source_handle`` selects a branch output ("true"/"false" on predicates);
    no handle means always follow.
    """

    id: str
    source_id: str = Field(..., alias="sourceId")
    target_id: str = Field(..., alias="targetId")
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    target_handle: Optional[str] = Field(None, alias="targetHandle")
    label: Optional[str] = None


# ============================================================================
# Definition
# ============================================================================

class WorkflowDefinition(_Model):
    """
    Complete workflow graph.

    Treated as read-only by the engine. Edges pointing at unknown node ids are
    not rejected here; they fail at execution time when reached.
    """

    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)
    variables: Optional[List[WorkflowVariable]] = None

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Get node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_start_nodes(self) -> List[StartNode]:
        """Get all nodes of type ``start``."""
        return [node for node in self.nodes if node.type == NodeType.START.value]

    def find_start_node(self) -> Optional[StartNode]:
        """First start node, if any."""
        starts = self.get_start_nodes()
        return starts[0] if starts else None

    def get_outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        """Edges leaving ``node_id`` in definition order."""
        return [edge for edge in self.edges if edge.source_id == node_id]

    def get_downstream_nodes(self, node_id: str) -> List[str]:
        """Target ids of every outgoing edge."""
        return [edge.target_id for edge in self.get_outgoing_edges(node_id)]

    def get_upstream_nodes(self, node_id: str) -> List[str]:
        """Source ids of every incoming edge."""
        return [edge.source_id for edge in self.edges if edge.target_id == node_id]


def parse_workflow(data: Dict[str, Any]) -> WorkflowDefinition:
    """Parse workflow JSON into WorkflowDefinition."""
    return WorkflowDefinition.model_validate(data)


def create_default_workflow() -> WorkflowDefinition:
    """Template for a new workflow: an unconnected start and end node."""
    return WorkflowDefinition(
        nodes=[
            StartNode(id="start-1", label="Start", position=NodePosition(x=250, y=50)),
            EndNode(id="end-1", label="End", status="success", position=NodePosition(x=250, y=400)),
        ],
        edges=[],
        variables=[],
    )


# ============================================================================
# Runs
# ============================================================================

class StepLog(_Model):
    """
    One node execution inside a run.

    Appended when a node starts and mutated in place when it finishes.
    """

    node_id: str = Field(..., alias="nodeId")
    node_name: Optional[str] = Field(None, alias="nodeName")
    node_type: str = Field(..., alias="nodeType")
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[str] = Field(None, alias="startedAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None


class WorkflowRun(_Model):
    """Terminal record returned by every execution mode."""

    id: str
    workflow_id: str = Field(..., alias="workflowId")
    status: RunStatus
    variables: Dict[str, Any] = Field(default_factory=dict)
    step_logs: List[StepLog] = Field(default_factory=list, alias="stepLogs")
    error: Optional[str] = None
    started_at: str = Field(default_factory=utc_now, alias="startedAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")

    @property
    def is_success(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def is_error(self) -> bool:
        return self.status == RunStatus.FAILED

    def to_json_dict(self) -> Dict[str, Any]:
        """camelCase JSON-ready dict for persistence by the caller."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = [
    "NodeType",
    "PredicateOperator",
    "StepStatus",
    "RunStatus",
    "WorkflowVariable",
    "PredicateExpression",
    "TransactionNodeConfig",
    "ExtractionRule",
    "ScriptNodeConfig",
    "PredicateNodeConfig",
    "AdapterNodeConfig",
    "TransformMapping",
    "TransformNodeConfig",
    "LoggingNodeConfig",
    "NodePosition",
    "BaseNode",
    "StartNode",
    "EndNode",
    "TransactionNode",
    "ScriptNode",
    "PredicateNode",
    "AdapterNode",
    "TransformNode",
    "LoggingNode",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowDefinition",
    "StepLog",
    "WorkflowRun",
    "parse_workflow",
    "create_default_workflow",
    "utc_now",
]

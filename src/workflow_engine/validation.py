"""
Pre-flight validation for workflow definitions.

The engine runs whatever it is given and only fails when a broken node is
reached. Callers that want to refuse a run up front (the builder's Run button,
the CLI ``validate`` command) call ``validate_workflow`` first and show the
issues.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field

from .models import (
    NodeType,
    PredicateNode,
    PredicateOperator,
    ScriptNode,
    TransactionNode,
    WorkflowDefinition,
    parse_workflow,
)
from .variables import slugify


KNOWN_OPERATORS = {op.value for op in PredicateOperator}


class ValidationIssue(BaseModel):
    """A problem that should stop a workflow from being run."""

    code: str = Field(..., description="Machine-readable issue code")
    message: str
    node_id: Optional[str] = Field(None, serialization_alias="nodeId")
    edge_id: Optional[str] = Field(None, serialization_alias="edgeId")


def _node_name(node: Any) -> str:
    return node.label or node.id


def validate_workflow(
    definition: WorkflowDefinition | Mapping[str, Any],
    required_args: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[ValidationIssue]:
    """
    Check a definition for problems that would break or confuse a run.

    Args:
        definition: Workflow definition or JSON dict
        required_args: Optional map of transaction id to the argument names
            its contract function requires

    Returns:
        Issues in a stable order; empty when the workflow is runnable
    """
    if isinstance(definition, Mapping):
        definition = parse_workflow(dict(definition))

    issues: List[ValidationIssue] = []
    issues.extend(_check_node_ids(definition))
    issues.extend(_check_labels(definition))
    issues.extend(_check_start_nodes(definition))
    issues.extend(_check_transactions(definition, required_args or {}))
    issues.extend(_check_scripts(definition))
    issues.extend(_check_predicates(definition))
    issues.extend(_check_edges(definition))
    return issues


def is_runnable(definition: WorkflowDefinition | Mapping[str, Any]) -> bool:
    return not validate_workflow(definition)


def _check_node_ids(definition: WorkflowDefinition) -> List[ValidationIssue]:
    counts = Counter(node.id for node in definition.nodes)
    return [
        ValidationIssue(code="duplicate_node_id", message=f'Node id "{node_id}" is used more than once.', node_id=node_id)
        for node_id, count in counts.items()
        if count > 1
    ]


def _check_labels(definition: WorkflowDefinition) -> List[ValidationIssue]:
    """Result aliases come from label slugs, so two nodes must not share one."""
    seen: Dict[str, str] = {}
    issues = []
    for node in definition.nodes:
        slug = slugify(node.display_name)
        if slug in seen:
            issues.append(ValidationIssue(
                code="duplicate_label",
                message=f'Node labels must be unique. Duplicate found: "{slug}". Please rename your nodes.',
                node_id=node.id,
            ))
        else:
            seen[slug] = node.id
    return issues


def _check_start_nodes(definition: WorkflowDefinition) -> List[ValidationIssue]:
    starts = definition.get_start_nodes()
    if not starts:
        return [ValidationIssue(code="missing_start_node", message="Workflow has no start node.")]
    return [
        ValidationIssue(
            code="multiple_start_nodes",
            message=f'Workflow has more than one start node; "{_node_name(node)}" is extra.',
            node_id=node.id,
        )
        for node in starts[1:]
    ]


def _check_transactions(
    definition: WorkflowDefinition,
    required_args: Mapping[str, Sequence[str]],
) -> List[ValidationIssue]:
    issues = []
    for node in definition.nodes:
        if not isinstance(node, TransactionNode):
            continue
        transaction_id = node.config.transaction_id
        if not transaction_id:
            issues.append(ValidationIssue(
                code="missing_transaction",
                message=f'Transaction node "{_node_name(node)}" has no transaction selected.',
                node_id=node.id,
            ))
            continue

        args = node.config.args or {}
        for name in required_args.get(transaction_id, []):
            value = args.get(name)
            if not value or not str(value).strip():
                issues.append(ValidationIssue(
                    code="missing_argument",
                    message=f'Transaction node "{_node_name(node)}" is missing required argument "{name}".',
                    node_id=node.id,
                ))
                break
    return issues


def _check_scripts(definition: WorkflowDefinition) -> List[ValidationIssue]:
    return [
        ValidationIssue(
            code="missing_script",
            message=f'Script node "{_node_name(node)}" has no script selected.',
            node_id=node.id,
        )
        for node in definition.nodes
        if isinstance(node, ScriptNode) and not node.config.script_id
    ]


def _check_predicates(definition: WorkflowDefinition) -> List[ValidationIssue]:
    return [
        ValidationIssue(
            code="unknown_operator",
            message=f'Predicate node "{_node_name(node)}" uses unknown operator "{node.config.expression.operator}".',
            node_id=node.id,
        )
        for node in definition.nodes
        if isinstance(node, PredicateNode) and node.config.expression.operator not in KNOWN_OPERATORS
    ]


def _check_edges(definition: WorkflowDefinition) -> List[ValidationIssue]:
    node_ids = {node.id for node in definition.nodes}
    issues = []
    for edge in definition.edges:
        for end in (edge.source_id, edge.target_id):
            if end not in node_ids:
                issues.append(ValidationIssue(
                    code="unknown_edge_node",
                    message=f'Edge "{edge.id}" references unknown node "{end}".',
                    edge_id=edge.id,
                ))
        if edge.source_id in node_ids:
            source = definition.get_node(edge.source_id)
            if source.type == NodeType.END.value:
                issues.append(ValidationIssue(
                    code="edge_from_end",
                    message=f'Edge "{edge.id}" leaves end node "{_node_name(source)}" and will never be followed.',
                    edge_id=edge.id,
                    node_id=source.id,
                ))
    return issues


__all__ = [
    "ValidationIssue",
    "validate_workflow",
    "is_runnable",
    "KNOWN_OPERATORS",
]

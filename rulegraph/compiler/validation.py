"""
Rule Compiler — Structural Validation
======================================
Pre-save checks over the editor graph and the rule metadata. Unlike the
extractor, which stops at the first problem, every defect is collected so the
editor can show the whole list at once. Validation does not depend on the
graph compiling.
"""

from __future__ import annotations

from typing import List, NamedTuple, Optional, Set

from rulegraph.core.GraphPrimitives import Graph
from rulegraph.core.Types import NodeKind

from .ir import RuleMetadata


class RuleValidation(NamedTuple):
    valid: bool
    errors: List[str]


def _nodes_feeding(graph: Graph, node_id: str) -> Set[str]:
    """All node ids with a path into ``node_id``."""
    seen: Set[str] = set()
    stack = [node_id]
    while stack:
        current = stack.pop()
        for edge in graph.incoming_edges(current):
            if edge.source_node_id not in seen:
                seen.add(edge.source_node_id)
                stack.append(edge.source_node_id)
    return seen


def _check_metadata(metadata: Optional[RuleMetadata], errors: List[str]) -> None:
    if metadata is None:
        errors.append("Rule metadata is missing (name, rule code and event type are required)")
        return
    if not metadata.name.strip():
        errors.append("Rule name is required")
    if not metadata.rule_code.strip():
        errors.append("Rule code is required")
    if not metadata.event_type.strip():
        errors.append("Trigger event type is required")


def validate_rule(graph: Graph,
                  metadata: Optional[RuleMetadata] = None,
                  require_metadata: bool = False) -> RuleValidation:
    errors: List[str] = []

    actions = graph.nodes_of_kind(NodeKind.ACTION)
    if not actions:
        errors.append("Rule must contain at least one action node")

    connected: Set[str] = set()
    for action in actions:
        if not graph.incoming_edges(action.id):
            errors.append(f"Action node '{action.id}' has no incoming connection; it would never trigger")
        if not action.payload.target_id:
            errors.append(f"Action node '{action.id}' must select a badge to grant")
        quantity = action.payload.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors.append(f"Action node '{action.id}': quantity must be a positive integer")
        connected.add(action.id)
        connected |= _nodes_feeding(graph, action.id)

    for node in graph.nodes:
        if node.kind == NodeKind.CONDITION:
            payload = node.payload
            if not payload.field.strip():
                errors.append(f"Condition node '{node.id}' must specify a field")
            if not payload.is_value_valid():
                errors.append(
                    f"Condition node '{node.id}': value does not fit operator "
                    f"'{payload.operator.value}' (expects {payload.operator.arity.value})"
                )
        elif node.kind == NodeKind.LOGIC:
            if not graph.incoming_edges(node.id):
                errors.append(f"Logic node '{node.id}' has no connected inputs")
        elif node.kind != NodeKind.ACTION:
            errors.append(f"Node '{node.id}' has unsupported kind {node.kind}")

        if actions and node.id not in connected:
            errors.append(f"Node '{node.id}' is not connected to any action")

    if require_metadata:
        _check_metadata(metadata, errors)

    return RuleValidation(valid=not errors, errors=errors)

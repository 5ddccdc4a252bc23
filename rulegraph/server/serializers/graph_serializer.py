"""
Graph serializer — converts editor Graph values into JSON-safe dicts for the
canvas UI, and canvas node payloads back into payload objects.

Wire shapes (camelCase, as the UI expects):

    SerializedNode keys: id, kind, position {x, y}, data
    SerializedEdge keys: id, sourceNodeId, targetNodeId, targetSlot
    SerializedGraph keys: nodes, edges

    condition data: field, operator, value
    logic data:     combinator, slotCount, slots
    action data:    targetId, quantity, displayName
"""
from __future__ import annotations

from typing import Any, Dict, List

from rulegraph.bridge.highlight import Highlight
from rulegraph.compiler.schema import value_to_json
from rulegraph.core.GraphPrimitives import (
    ActionPayload,
    ConditionPayload,
    Edge,
    Graph,
    LogicPayload,
    Node,
    Payload,
)
from rulegraph.core.Types import NodeKind


# ── Payloads ──────────────────────────────────────────────────────────────────

def serialize_payload(payload: Payload) -> Dict[str, Any]:
    if isinstance(payload, ConditionPayload):
        return {
            "field": payload.field,
            "operator": payload.operator.value,
            "value": value_to_json(payload.value),
        }
    if isinstance(payload, LogicPayload):
        return {
            "combinator": payload.combinator.value,
            "slotCount": payload.slot_count,
            "slots": payload.slots,
        }
    return {
        "targetId": payload.target_id,
        "quantity": payload.quantity,
        "displayName": payload.display_name,
    }


def payload_from_dict(kind: NodeKind, data: Dict[str, Any], slot_count: int) -> Payload:
    """
    Build a payload for a node of ``kind`` from UI data. Missing keys take the
    payload defaults; ``slot_count`` is used for logic nodes that omit it.

    Raises ValueError on an unknown operator/combinator or a non-integer quantity.
    """
    kind = NodeKind.parse(kind)
    if kind == NodeKind.CONDITION:
        return ConditionPayload(
            str(data.get("field", "")),
            data.get("operator", "eq"),
            data.get("value", ""),
        )
    if kind == NodeKind.LOGIC:
        count = data.get("slotCount", slot_count)
        if not isinstance(count, int) or isinstance(count, bool):
            raise ValueError(f"slotCount must be an integer, got {count!r}")
        return LogicPayload(data.get("combinator", "AND"), count)

    quantity = data.get("quantity", 1)
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValueError(f"quantity must be an integer, got {quantity!r}")
    return ActionPayload(
        str(data.get("targetId", "")),
        quantity,
        str(data.get("displayName", "")),
    )


# ── Graph ─────────────────────────────────────────────────────────────────────

def serialize_node(node: Node) -> Dict[str, Any]:
    return {
        "id": node.id,
        "kind": node.kind.value,
        "position": {"x": node.position.x, "y": node.position.y},
        "data": serialize_payload(node.payload),
    }


def serialize_edge(edge: Edge) -> Dict[str, Any]:
    return {
        "id": edge.id,
        "sourceNodeId": edge.source_node_id,
        "targetNodeId": edge.target_node_id,
        "targetSlot": edge.target_slot,
    }


def serialize_graph(graph: Graph) -> Dict[str, List[Dict[str, Any]]]:
    return {
        "nodes": [serialize_node(n) for n in graph.nodes],
        "edges": [serialize_edge(e) for e in graph.edges],
    }


def serialize_highlight(highlight: Highlight) -> Dict[str, Any]:
    return {
        "nodeIds": sorted(highlight.node_ids),
        "edgeIds": sorted(highlight.edge_ids),
        "matched": highlight.matched,
    }

"""
Connection validation for the rule canvas.

Decides whether a proposed edge may be added to the current graph. Both entry
points are pure: they read the graph and never mutate it, so the boolean form
can be called on every drag frame for live feedback while the detailed form
supplies the message shown when a drop is refused.

Legal kind pairs:

    condition -> logic      condition -> action
    logic     -> logic      logic     -> action
"""
from __future__ import annotations

from typing import FrozenSet, List, NamedTuple, Optional, Tuple

from .GraphPrimitives import Graph, Node, path_exists
from .Types import NodeKind


class ProposedConnection(NamedTuple):
    source: Optional[str]
    target: Optional[str]
    target_slot: Optional[str] = None
    # set when re-validating an edge that already exists (e.g. a reconnect)
    edge_id: Optional[str] = None


class ValidationResult(NamedTuple):
    valid: bool
    reason: Optional[str] = None

    @staticmethod
    def ok() -> 'ValidationResult':
        return ValidationResult(True)

    @staticmethod
    def reject(reason: str) -> 'ValidationResult':
        return ValidationResult(False, reason)


LEGAL_PAIRS: FrozenSet[Tuple[NodeKind, NodeKind]] = frozenset({
    (NodeKind.CONDITION, NodeKind.LOGIC),
    (NodeKind.CONDITION, NodeKind.ACTION),
    (NodeKind.LOGIC, NodeKind.LOGIC),
    (NodeKind.LOGIC, NodeKind.ACTION),
})


def acceptable_source_kinds(target_kind: NodeKind) -> List[NodeKind]:
    """Node kinds that may feed a node of ``target_kind``."""
    if target_kind in (NodeKind.LOGIC, NodeKind.ACTION):
        return [NodeKind.CONDITION, NodeKind.LOGIC]
    if target_kind == NodeKind.CONDITION:
        return []
    raise ValueError(f"Unhandled node kind {target_kind}")


def acceptable_target_kinds(source_kind: NodeKind) -> List[NodeKind]:
    """Node kinds a node of ``source_kind`` may connect to."""
    if source_kind in (NodeKind.CONDITION, NodeKind.LOGIC):
        return [NodeKind.LOGIC, NodeKind.ACTION]
    if source_kind == NodeKind.ACTION:
        return []
    raise ValueError(f"Unhandled node kind {source_kind}")


def input_slots(node: Node) -> List[Optional[str]]:
    """Input slots a node exposes. Actions have one unnamed input."""
    if node.kind == NodeKind.LOGIC:
        return list(node.payload.slots)
    if node.kind == NodeKind.ACTION:
        return [None]
    if node.kind == NodeKind.CONDITION:
        return []
    raise ValueError(f"Unhandled node kind {node.kind}")


def _check_slot(proposed: ProposedConnection, target: Node, graph: Graph) -> Optional[str]:
    slots = input_slots(target)
    if proposed.target_slot not in slots:
        if target.kind == NodeKind.LOGIC:
            if proposed.target_slot is None:
                return "Choose an input slot on the logic node"
            return (f"Logic node '{target.id}' has no input slot '{proposed.target_slot}' "
                    f"(available: {', '.join(slots)})")
        return f"Action node '{target.id}' has a single input and no slot '{proposed.target_slot}'"

    occupant = graph.edge_at(target.id, proposed.target_slot)
    if occupant is not None and occupant.id != proposed.edge_id:
        where = f"slot '{proposed.target_slot}'" if proposed.target_slot else "input"
        return f"The {where} of '{target.id}' is already connected"
    return None


def validate_connection(proposed: ProposedConnection, graph: Graph) -> ValidationResult:
    """Validate ``proposed`` against ``graph`` and explain any rejection."""
    source_id, target_id = proposed.source, proposed.target

    if not source_id or not target_id:
        return ValidationResult.reject("Connection is incomplete")

    if source_id == target_id:
        return ValidationResult.reject("A node cannot connect to itself")

    source = graph.get_node(source_id)
    target = graph.get_node(target_id)
    if source is None or target is None:
        missing = source_id if source is None else target_id
        return ValidationResult.reject(f"Unknown node '{missing}'")

    if source.kind == NodeKind.ACTION:
        return ValidationResult.reject("Action nodes are terminal and cannot have outgoing connections")

    if target.kind == NodeKind.CONDITION:
        return ValidationResult.reject(
            "Condition nodes do not accept inputs; combine conditions through a logic node"
        )

    if (source.kind, target.kind) not in LEGAL_PAIRS:
        return ValidationResult.reject(
            f"Cannot connect a {source.kind.value} node to a {target.kind.value} node"
        )

    slot_problem = _check_slot(proposed, target, graph)
    if slot_problem:
        return ValidationResult.reject(slot_problem)

    for edge in graph.incoming_edges(target_id):
        if edge.source_node_id == source_id and edge.id != proposed.edge_id:
            return ValidationResult.reject(f"'{source_id}' is already connected to '{target_id}'")

    # Adding source -> target closes a loop iff target already reaches source.
    existing = [e for e in graph.edges if e.id != proposed.edge_id]
    if path_exists(existing, target_id, source_id):
        return ValidationResult.reject("Connection would create a cycle")

    return ValidationResult.ok()


def is_valid_connection(proposed: ProposedConnection, graph: Graph) -> bool:
    return validate_connection(proposed, graph).valid

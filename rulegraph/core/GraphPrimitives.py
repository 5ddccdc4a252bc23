from dataclasses import dataclass, replace
from functools import cached_property
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union
import logging

from .Types import Combinator, NodeKind, Operator, ValueArity

logger = logging.getLogger(__name__)

DEFAULT_LOGIC_SLOTS = 3


def slot_names(count: int) -> List[str]:
    return [f"input-{i}" for i in range(1, count + 1)]


def slot_index(slot: Optional[str]) -> int:
    """Sort key for a logic slot name; unnamed or malformed slots sort last."""
    if slot and slot.startswith("input-"):
        try:
            return int(slot[len("input-"):])
        except ValueError:
            pass
    return 1 << 30


class Position(NamedTuple):
    x: float = 0.0
    y: float = 0.0


# ── Node payloads ────────────────────────────────────────────────────────────
# Frozen so a Graph value can be retained by the history without copying.

@dataclass(frozen=True)
class ConditionPayload:
    field: str = ""
    operator: Operator = Operator.EQ
    value: Any = ""

    def __post_init__(self):
        object.__setattr__(self, "operator", Operator.parse(self.operator))
        if self.operator.arity == ValueArity.NONE and self.value == "":
            # the blank placeholder means "no value"
            object.__setattr__(self, "value", None)
        object.__setattr__(self, "value", ValueArity.normalize(self.value))

    def is_value_valid(self) -> bool:
        return ValueArity.validate(self.value, self.operator.arity)


@dataclass(frozen=True)
class LogicPayload:
    combinator: Combinator = Combinator.AND
    slot_count: int = DEFAULT_LOGIC_SLOTS

    def __post_init__(self):
        object.__setattr__(self, "combinator", Combinator.parse(self.combinator))
        if self.slot_count < 1:
            raise ValueError(f"Logic node needs at least one input slot, got {self.slot_count}")

    @property
    def slots(self) -> List[str]:
        return slot_names(self.slot_count)


@dataclass(frozen=True)
class ActionPayload:
    target_id: str = ""
    quantity: int = 1
    # denormalized label, never compiled
    display_name: str = ""


Payload = Union[ConditionPayload, LogicPayload, ActionPayload]

_PAYLOAD_KIND = {
    ConditionPayload: NodeKind.CONDITION,
    LogicPayload: NodeKind.LOGIC,
    ActionPayload: NodeKind.ACTION,
}


def kind_of_payload(payload: Payload) -> NodeKind:
    kind = _PAYLOAD_KIND.get(type(payload))
    if kind is None:
        raise TypeError(f"Unsupported node payload {type(payload).__name__}")
    return kind


@dataclass(frozen=True)
class Node:
    id: str
    kind: NodeKind
    payload: Payload
    position: Position = Position()

    def __post_init__(self):
        object.__setattr__(self, "kind", NodeKind.parse(self.kind))
        if kind_of_payload(self.payload) != self.kind:
            raise ValueError(
                f"Node '{self.id}' is a {self.kind.value} node but carries a "
                f"{type(self.payload).__name__}"
            )

    def __repr__(self):
        return f"Node({self.id}:{self.kind.value})"


class Edge(NamedTuple):
    id: str
    source_node_id: str
    target_node_id: str
    # named input on a multi-input node; None is the target's single default input
    target_slot: Optional[str] = None

    def __repr__(self):
        slot = f"[{self.target_slot}]" if self.target_slot else ""
        return f"Edge({self.source_node_id} -> {self.target_node_id}{slot})"


def edge_id_for(source: str, target: str, slot: Optional[str] = None) -> str:
    return f"e-{source}-{target}" + (f"-{slot}" if slot else "")


# ── Graph ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Graph:
    """
    The full node and edge set at one instant.

    A Graph is a value: every mutation returns a new Graph and leaves the
    receiver untouched. Nodes and edges are kept in insertion order (Arena
    pattern, addressed by id).
    """
    nodes: Tuple[Node, ...] = ()
    edges: Tuple[Edge, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "nodes", tuple(self.nodes))
        object.__setattr__(self, "edges", tuple(self.edges))

    # ── Lookups ───────────────────────────────────────────────────────────

    @cached_property
    def _node_index(self) -> Dict[str, Node]:
        return {node.id: node for node in self.nodes}

    @cached_property
    def _edge_index(self) -> Dict[str, Edge]:
        return {edge.id: edge for edge in self.edges}

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._node_index.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        return self._edge_index.get(edge_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_index

    def nodes_of_kind(self, kind: NodeKind) -> List[Node]:
        return [n for n in self.nodes if n.kind == kind]

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target_node_id == node_id]

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source_node_id == node_id]

    def edge_at(self, target_node_id: str, target_slot: Optional[str]) -> Optional[Edge]:
        for e in self.edges:
            if e.target_node_id == target_node_id and e.target_slot == target_slot:
                return e
        return None

    # ── Mutations (return a new Graph) ───────────────────────────────────

    def with_node(self, node: Node) -> 'Graph':
        if self.has_node(node.id):
            raise ValueError(f"Node with id '{node.id}' already exists in the graph")
        logger.debug("Graph: adding node %s", node.id)
        return Graph(self.nodes + (node,), self.edges)

    def without_node(self, node_id: str) -> 'Graph':
        if not self.has_node(node_id):
            raise ValueError(f"Node with id '{node_id}' does not exist in the graph")
        # edges attached to the node go with it
        edges = tuple(e for e in self.edges
                      if e.source_node_id != node_id and e.target_node_id != node_id)
        logger.debug("Graph: removing node %s and %d edge(s)", node_id, len(self.edges) - len(edges))
        return Graph(tuple(n for n in self.nodes if n.id != node_id), edges)

    def with_edge(self, edge: Edge) -> 'Graph':
        if edge.id in self._edge_index:
            raise ValueError(f"Edge with id '{edge.id}' already exists in the graph")
        for endpoint in (edge.source_node_id, edge.target_node_id):
            if not self.has_node(endpoint):
                raise ValueError(f"Edge '{edge.id}' references unknown node '{endpoint}'")
        logger.debug("Graph: adding %r", edge)
        return Graph(self.nodes, self.edges + (edge,))

    def without_edge(self, edge_id: str) -> 'Graph':
        if edge_id not in self._edge_index:
            raise ValueError(f"Edge with id '{edge_id}' does not exist in the graph")
        return Graph(self.nodes, tuple(e for e in self.edges if e.id != edge_id))

    def _replace_node(self, node_id: str, **changes) -> 'Graph':
        node = self.get_node(node_id)
        if node is None:
            raise ValueError(f"Node with id '{node_id}' does not exist in the graph")
        updated = replace(node, **changes)
        return Graph(tuple(updated if n.id == node_id else n for n in self.nodes), self.edges)

    def move_node(self, node_id: str, x: float, y: float) -> 'Graph':
        return self._replace_node(node_id, position=Position(x, y))

    def replace_payload(self, node_id: str, payload: Payload) -> 'Graph':
        return self._replace_node(node_id, payload=payload)


# ── Traversal ────────────────────────────────────────────────────────────────
# Shared by the connection validator (pre-check) and the compiler (re-check).

def path_exists(edges: Iterable[Edge], start: str, goal: str) -> bool:
    """True if following edges source -> target leads from start to goal."""
    adjacency: Dict[str, List[str]] = {}
    for e in edges:
        adjacency.setdefault(e.source_node_id, []).append(e.target_node_id)

    stack = [start]
    visited = set()
    while stack:
        current = stack.pop()
        if current == goal:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(adjacency.get(current, []))
    return False


def find_cycle(graph: Graph) -> Optional[List[str]]:
    """Return the node ids along one cycle, or None if the graph is a DAG."""
    adjacency: Dict[str, List[str]] = {}
    for e in graph.edges:
        adjacency.setdefault(e.source_node_id, []).append(e.target_node_id)

    WHITE, GREY, BLACK = 0, 1, 2
    colour = {node.id: WHITE for node in graph.nodes}

    for root in list(colour):
        if colour[root] != WHITE:
            continue
        path: List[str] = []
        stack: List[Tuple[str, int]] = [(root, 0)]
        while stack:
            node_id, child_index = stack.pop()
            if child_index == 0:
                colour[node_id] = GREY
                path.append(node_id)
            children = adjacency.get(node_id, [])
            if child_index < len(children):
                stack.append((node_id, child_index + 1))
                child = children[child_index]
                state = colour.get(child, BLACK)
                if state == GREY:
                    return path[path.index(child):] + [child]
                if state == WHITE:
                    stack.append((child, 0))
            else:
                colour[node_id] = BLACK
                path.pop()
    return None

"""
Rule Compiler — Decompiler
===========================
Rebuilds an editor Graph from a RuleDefinition so a saved rule can be edited
again.

Every Group and Condition gets a fresh node; the root Action becomes the one
Action node. Group children are wired into slots input-1..input-N in child
order, so compiling the result yields a structurally equal rule. Node ids
are new on every call.

Layout is layered: the Action sits in the rightmost column and each level of
nesting moves one column left. A saved layout (the "layout" block written on
save) overrides the computed positions. Positions carry no meaning for
compilation.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from rulegraph.core.GraphPrimitives import (
    DEFAULT_LOGIC_SLOTS,
    ActionPayload,
    ConditionPayload,
    Edge,
    Graph,
    LogicPayload,
    Node,
    Position,
    edge_id_for,
    slot_names,
)
from rulegraph.core.Types import NodeKind

from .errors import SchemaError
from .ir import Condition, Expression, Group, RuleDefinition

COLUMN_WIDTH = 250
ROW_HEIGHT = 120
ORIGIN_X = 100
ORIGIN_Y = 100


def _depth(expr: Expression) -> int:
    if isinstance(expr, Group):
        return 1 + max((_depth(c) for c in expr.children), default=0)
    return 1


class _GraphBuilder:
    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self.nodes: List[Node] = []
        self.edges: List[Edge] = []
        self._counters: Dict[str, int] = {}
        self._rows: Dict[int, int] = {}

    def _next_id(self, kind: NodeKind) -> str:
        count = self._counters.get(kind.value, 0) + 1
        self._counters[kind.value] = count
        return f"{kind.value}-{count}"

    def _position(self, depth: int) -> Position:
        row = self._rows.get(depth, 0)
        self._rows[depth] = row + 1
        return Position(ORIGIN_X + (self.max_depth - depth) * COLUMN_WIDTH, ORIGIN_Y + row * ROW_HEIGHT)

    def add(self, kind: NodeKind, payload, depth: int) -> str:
        node_id = self._next_id(kind)
        self.nodes.append(Node(node_id, kind, payload, self._position(depth)))
        return node_id

    def connect(self, source: str, target: str, slot: Optional[str] = None) -> None:
        self.edges.append(Edge(edge_id_for(source, target, slot), source, target, slot))

    def expand(self, expr: Expression, parent_id: str, slot: Optional[str], depth: int) -> None:
        if isinstance(expr, Condition):
            node_id = self.add(NodeKind.CONDITION, ConditionPayload(expr.field, expr.operator, expr.value), depth)
            self.connect(node_id, parent_id, slot)
            return

        if isinstance(expr, Group):
            slot_count = max(DEFAULT_LOGIC_SLOTS, len(expr.children))
            node_id = self.add(NodeKind.LOGIC, LogicPayload(expr.combinator, slot_count), depth)
            self.connect(node_id, parent_id, slot)
            for child, child_slot in zip(expr.children, slot_names(slot_count)):
                self.expand(child, node_id, child_slot, depth + 1)
            return

        raise TypeError(f"Unsupported expression {type(expr).__name__}")


def _saved_positions(layout: Any) -> List[Tuple[str, Position]]:
    if not isinstance(layout, dict) or not isinstance(layout.get("nodes"), list):
        raise SchemaError("layout must be an object with a 'nodes' list")
    saved = []
    for i, entry in enumerate(layout["nodes"]):
        ctx = f"layout.nodes[{i}]"
        position = entry.get("position") if isinstance(entry, dict) else None
        if not isinstance(position, dict):
            raise SchemaError(f"{ctx} needs a 'position' object")
        x, y = position.get("x"), position.get("y")
        for axis, value in (("x", x), ("y", y)):
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise SchemaError(f"{ctx}.position.{axis} must be a finite number, got {value!r}")
        saved.append((str(entry.get("id", "")), Position(float(x), float(y))))
    return saved


def apply_layout(graph: Graph, layout: Any) -> Graph:
    """
    Restore saved node positions onto a decompiled graph.

    A node takes the position saved under its own id; failing that, the entry
    at its index in the saved list. Nodes with neither keep the computed
    position.
    """
    saved = _saved_positions(layout)
    by_id = dict(saved)
    for index, node in enumerate(graph.nodes):
        position = by_id.get(node.id)
        if position is None and index < len(saved):
            position = saved[index][1]
        if position is not None:
            graph = graph.move_node(node.id, position.x, position.y)
    return graph


def rule_to_graph(rule: RuleDefinition, display_name: str = "", layout: Optional[Dict[str, Any]] = None) -> Graph:
    builder = _GraphBuilder(_depth(rule.expression))
    action_id = builder.add(
        NodeKind.ACTION,
        ActionPayload(rule.root.target_id, rule.root.quantity, display_name),
        0,
    )
    builder.expand(rule.expression, action_id, None, 1)
    graph = Graph(tuple(builder.nodes), tuple(builder.edges))
    if layout is not None:
        graph = apply_layout(graph, layout)
    return graph

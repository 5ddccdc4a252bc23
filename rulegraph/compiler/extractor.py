"""
Rule Compiler — Graph Extractor
================================
Reduces an editor Graph to a RuleDefinition tree.

The walk starts at the single Action node and follows incoming edges
backwards:

  ┌────────────────────┬──────────────────────────────────────────────┐
  │ predecessor kind   │ emitted expression                           │
  ├────────────────────┼──────────────────────────────────────────────┤
  │ condition          │ Condition(field, operator, value)            │
  │ logic              │ Group(combinator, children in slot order)    │
  │ action             │ error: actions are terminal                  │
  └────────────────────┴──────────────────────────────────────────────┘

Empty slots on a Logic node are skipped; a Logic node with no populated slot
is an error. A node reached twice would need a shared subexpression, which
the tree form cannot express, so it is rejected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Set

from rulegraph.core.GraphPrimitives import Graph, Node, find_cycle, slot_index
from rulegraph.core.Types import NodeKind

from .errors import CompilationError
from .ir import Action, Condition, Expression, Group, RuleDefinition

logger = logging.getLogger(__name__)


@dataclass
class CompiledRule:
    rule: RuleDefinition
    action_node_id: str
    # expression path ("" for the root expression, "0.1" for a nested child)
    # → id of the graph node it was compiled from
    source_map: Dict[str, str] = field(default_factory=dict)


class _Extractor:
    def __init__(self, graph: Graph):
        self.graph = graph
        self.source_map: Dict[str, str] = {}
        self._emitted: Set[str] = set()

    def _child_path(self, path: str, index: int) -> str:
        return f"{path}.{index}" if path else str(index)

    def _ordered_inputs(self, node: Node) -> List[str]:
        incoming = self.graph.incoming_edges(node.id)
        # stable: edges sharing a slot key keep insertion order
        incoming.sort(key=lambda e: slot_index(e.target_slot))
        return [e.source_node_id for e in incoming]

    def resolve(self, node_id: str, path: str) -> Expression:
        node = self.graph.get_node(node_id)
        if node is None:
            raise CompilationError(f"Edge references missing node '{node_id}'")
        if node_id in self._emitted:
            raise CompilationError(
                f"Node '{node_id}' feeds more than one input; a rule cannot share subexpressions"
            )
        self._emitted.add(node_id)
        self.source_map[path] = node_id

        if node.kind == NodeKind.CONDITION:
            payload = node.payload
            if not payload.field:
                raise CompilationError(f"Condition '{node_id}' has no field")
            if not payload.is_value_valid():
                raise CompilationError(
                    f"Condition '{node_id}': value {payload.value!r} does not fit operator "
                    f"'{payload.operator.value}' ({payload.operator.arity.value})"
                )
            return Condition(payload.field, payload.operator, payload.value)

        if node.kind == NodeKind.LOGIC:
            sources = self._ordered_inputs(node)
            if not sources:
                raise CompilationError(f"Logic node '{node_id}' has no connected inputs")
            children = [self.resolve(src, self._child_path(path, i)) for i, src in enumerate(sources)]
            return Group(node.payload.combinator, tuple(children))

        if node.kind == NodeKind.ACTION:
            raise CompilationError(f"Action node '{node_id}' cannot feed another node")

        raise CompilationError(f"Unhandled node kind {node.kind}")


def _find_action(graph: Graph) -> Node:
    actions = graph.nodes_of_kind(NodeKind.ACTION)
    if not actions:
        raise CompilationError("Graph has no action node")
    if len(actions) > 1:
        ids = ", ".join(a.id for a in actions)
        raise CompilationError(f"Graph has {len(actions)} action nodes ({ids}); a rule needs exactly one")
    return actions[0]


def compile_graph(graph: Graph) -> CompiledRule:
    """
    Compile ``graph`` and keep track of which node produced each expression.

    Raises:
        CompilationError: when the graph cannot be reduced to one rule tree.
    """
    action = _find_action(graph)

    cycle = find_cycle(graph)
    if cycle:
        raise CompilationError(f"Graph contains a cycle: {' -> '.join(cycle)}")

    incoming = graph.incoming_edges(action.id)
    if not incoming:
        raise CompilationError(f"Action node '{action.id}' has no incoming connection")
    if len(incoming) > 1:
        raise CompilationError(
            f"Action node '{action.id}' has {len(incoming)} inputs; combine them through a logic node"
        )

    payload = action.payload
    if not payload.target_id:
        raise CompilationError(f"Action node '{action.id}' has no target")
    if isinstance(payload.quantity, bool) or not isinstance(payload.quantity, int) or payload.quantity < 1:
        raise CompilationError(f"Action node '{action.id}': quantity must be a positive integer")

    extractor = _Extractor(graph)
    expression = extractor.resolve(incoming[0].source_node_id, "")
    rule = RuleDefinition(Action(payload.target_id, payload.quantity), expression)

    logger.debug("Compiled graph (%d nodes) into rule for target %s", len(graph.nodes), payload.target_id)
    return CompiledRule(rule=rule, action_node_id=action.id, source_map=extractor.source_map)


def graph_to_rule(graph: Graph) -> RuleDefinition:
    return compile_graph(graph).rule

"""
Project a test result back onto the editor graph for visual feedback.

Preference order for the matched node set:

1. ``matchedNodeIds`` from the engine, limited to nodes that still exist.
2. Otherwise, nodes behind each matched condition result (by ``nodeId``,
   by expression path through the compile source map, or by field and
   operator), plus every node when the rule as a whole matched.

An edge is highlighted when both of its endpoints are. Missing or partial
data yields a smaller highlight, never an exception.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Set

from rulegraph.core.GraphPrimitives import Graph
from rulegraph.core.Types import NodeKind

from .models import ConditionResult, TestResult


@dataclass(frozen=True)
class Highlight:
    node_ids: FrozenSet[str] = frozenset()
    edge_ids: FrozenSet[str] = frozenset()
    matched: bool = False

    @staticmethod
    def empty() -> 'Highlight':
        return Highlight()


def _condition_nodes(graph: Graph,
                     result: ConditionResult,
                     source_map: Optional[Dict[str, str]]) -> Set[str]:
    if result.nodeId:
        if graph.has_node(result.nodeId):
            return {result.nodeId}
        mapped = (source_map or {}).get(result.nodeId)
        if mapped and graph.has_node(mapped):
            return {mapped}

    if not result.field:
        return set()
    found = set()
    for node in graph.nodes_of_kind(NodeKind.CONDITION):
        if node.payload.field != result.field:
            continue
        if result.operator and node.payload.operator.value != result.operator:
            continue
        found.add(node.id)
    return found


def project_highlight(graph: Graph,
                      result: TestResult,
                      source_map: Optional[Dict[str, str]] = None) -> Highlight:
    node_ids: Set[str] = set()

    if result.matchedNodeIds:
        node_ids = {nid for nid in result.matchedNodeIds if graph.has_node(nid)}

    if not node_ids:
        for condition in result.conditionResults:
            if condition.matched:
                node_ids |= _condition_nodes(graph, condition, source_map)
        if result.matched:
            node_ids |= {n.id for n in graph.nodes}

    edge_ids = {
        e.id for e in graph.edges
        if e.source_node_id in node_ids and e.target_node_id in node_ids
    }
    return Highlight(frozenset(node_ids), frozenset(edge_ids), result.matched)

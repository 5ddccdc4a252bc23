"""
RuleEditor — wires the graph model, connection validator, history, compiler
and test runner together behind the operations a canvas UI calls.

Every public mutation is one logical edit and produces at most one history
entry: it runs inside a history transaction, so timing never splits or merges
user operations. Drag gestures span many calls (begin_drag / drag_to /
end_drag) and still commit once.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from rulegraph.bridge.engine import EvaluationEngine
from rulegraph.bridge.highlight import Highlight
from rulegraph.bridge.models import TestContext
from rulegraph.bridge.runner import TestOutcome, TestRunner
from rulegraph.compiler.decompiler import rule_to_graph
from rulegraph.compiler.errors import CompilationError, RuleValidationError
from rulegraph.compiler.extractor import CompiledRule, compile_graph
from rulegraph.compiler.ir import RuleDefinition, RuleMetadata
from rulegraph.compiler.schema import rule_to_dict
from rulegraph.compiler.serializer import deserialize_rule, serialize_rule
from rulegraph.compiler.validation import RuleValidation, validate_rule
from rulegraph.config import Settings
from rulegraph.core.ConnectionValidator import ProposedConnection, ValidationResult, validate_connection
from rulegraph.core.GraphPrimitives import (
    ActionPayload,
    ConditionPayload,
    Edge,
    Graph,
    LogicPayload,
    Node,
    Payload,
    Position,
    edge_id_for,
    kind_of_payload,
)
from rulegraph.core.History import HistoryManager
from rulegraph.core.Types import Combinator, NodeKind, Operator

from .hotkeys import HotkeyHandlers, KeyEvent, Shortcut, dispatch

logger = logging.getLogger(__name__)

PASTE_OFFSET = 40.0

# default drop columns for new nodes, left to right in data-flow order
_DEFAULT_X = {
    NodeKind.CONDITION: 100.0,
    NodeKind.LOGIC: 350.0,
    NodeKind.ACTION: 600.0,
}


@dataclass
class _Clipboard:
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)


class RuleEditor:
    def __init__(self,
                 graph: Optional[Graph] = None,
                 settings: Optional[Settings] = None,
                 engine: Optional[EvaluationEngine] = None,
                 metadata: Optional[RuleMetadata] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.settings = settings or Settings()
        self.graph: Graph = graph if graph is not None else Graph()
        self.metadata: RuleMetadata = metadata or RuleMetadata()
        self.history = HistoryManager(self.settings.history_size, self.settings.history_debounce_ms, clock)
        self.runner: Optional[TestRunner] = TestRunner(engine) if engine is not None else None
        self.selection: Set[str] = set()
        self.save_handler: Optional[Callable[[Dict[str, Any]], Any]] = None

        self._listeners: List[Callable[[Graph], None]] = []
        self._clipboard = _Clipboard()
        self._drag_node: Optional[str] = None
        self._closed = False

        # the mount state is the first entry, so undoing the first edit returns here
        self.history.push(self.graph)

    # ── Observers ─────────────────────────────────────────────────────────

    def on_change(self, callback: Callable[[Graph], None]) -> None:
        self._listeners.append(callback)

    def _set_graph(self, graph: Graph) -> None:
        self.graph = graph
        self.selection &= {n.id for n in graph.nodes}

    def _notify(self) -> None:
        # listeners run after history is settled so can_undo/can_redo are current
        for callback in self._listeners:
            callback(self.graph)

    def _commit(self, graph: Graph) -> None:
        self._ensure_open()
        with self.history.transaction():
            self._set_graph(graph)
            self.history.push(graph)
        self._notify()

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Editor is closed")

    # ── Node creation ─────────────────────────────────────────────────────

    def _next_id(self, kind: NodeKind) -> str:
        count = len(self.graph.nodes_of_kind(kind)) + 1
        while self.graph.has_node(f"{kind.value}-{count}"):
            count += 1
        return f"{kind.value}-{count}"

    def _default_position(self, kind: NodeKind) -> Position:
        row = len(self.graph.nodes_of_kind(kind))
        return Position(_DEFAULT_X[kind], 100.0 + row * 120.0)

    def add_node(self, payload: Payload, position: Optional[Position] = None, node_id: Optional[str] = None) -> Node:
        kind = kind_of_payload(payload)
        node = Node(
            node_id or self._next_id(kind),
            kind,
            payload,
            Position(*position) if position is not None else self._default_position(kind),
        )
        self._commit(self.graph.with_node(node))
        logger.debug("Editor: added %r", node)
        return node

    def add_condition(self, field: str = "", operator: Union[Operator, str] = Operator.EQ,
                      value: Any = "", position: Optional[Position] = None) -> Node:
        return self.add_node(ConditionPayload(field, operator, value), position)

    def add_logic(self, combinator: Union[Combinator, str] = Combinator.AND,
                  position: Optional[Position] = None) -> Node:
        return self.add_node(LogicPayload(combinator, self.settings.logic_slots), position)

    def add_action(self, target_id: str = "", quantity: int = 1, display_name: str = "",
                   position: Optional[Position] = None) -> Node:
        return self.add_node(ActionPayload(target_id, quantity, display_name), position)

    # ── Node edits ────────────────────────────────────────────────────────

    def delete_nodes(self, node_ids: Iterable[str]) -> int:
        graph = self.graph
        removed = 0
        for node_id in node_ids:
            if graph.has_node(node_id):
                graph = graph.without_node(node_id)
                removed += 1
        if removed:
            self._commit(graph)
            logger.debug("Editor: deleted %d node(s)", removed)
        return removed

    def delete_selection(self) -> int:
        return self.delete_nodes(sorted(self.selection))

    def update_payload(self, node_id: str, payload: Payload) -> Node:
        graph = self.graph.replace_payload(node_id, payload)
        if isinstance(payload, LogicPayload):
            # edges on slots that no longer exist are dropped
            valid = set(payload.slots)
            for edge in graph.incoming_edges(node_id):
                if edge.target_slot not in valid:
                    graph = graph.without_edge(edge.id)
        self._commit(graph)
        return graph.get_node(node_id)

    def move_node(self, node_id: str, x: float, y: float) -> None:
        self._commit(self.graph.move_node(node_id, x, y))

    def begin_drag(self, node_id: str) -> None:
        self._ensure_open()
        if self._drag_node is not None:
            self.end_drag()
        if not self.graph.has_node(node_id):
            raise ValueError(f"Node with id '{node_id}' does not exist in the graph")
        self._drag_node = node_id
        self.history.begin_transaction()

    def drag_to(self, x: float, y: float) -> None:
        if self._drag_node is None:
            raise RuntimeError("drag_to() called without begin_drag()")
        graph = self.graph.move_node(self._drag_node, x, y)
        self._set_graph(graph)
        self.history.push(graph)
        self._notify()

    def end_drag(self) -> None:
        if self._drag_node is None:
            return
        self._drag_node = None
        if self.history.commit_transaction():
            self._notify()

    # ── Edges ─────────────────────────────────────────────────────────────

    def _first_free_slot(self, target: Node) -> Optional[str]:
        for slot in target.payload.slots:
            if self.graph.edge_at(target.id, slot) is None:
                return slot
        return None

    def check_connection(self, source: str, target: str, slot: Optional[str] = None) -> ValidationResult:
        return validate_connection(ProposedConnection(source, target, slot), self.graph)

    def connect(self, source: str, target: str, slot: Optional[str] = None) -> ValidationResult:
        """
        Add an edge if the validator accepts it. When no slot is given for a
        logic target the first free slot is used.
        """
        self._ensure_open()
        target_node = self.graph.get_node(target) if target else None
        if slot is None and target_node is not None and target_node.kind == NodeKind.LOGIC:
            slot = self._first_free_slot(target_node)
            if slot is None:
                result = ValidationResult.reject(f"All input slots on '{target}' are occupied")
                logger.warning("Editor: connection %s -> %s refused: %s", source, target, result.reason)
                return result

        result = self.check_connection(source, target, slot)
        if not result.valid:
            logger.warning("Editor: connection %s -> %s refused: %s", source, target, result.reason)
            return result

        self._commit(self.graph.with_edge(Edge(edge_id_for(source, target, slot), source, target, slot)))
        return result

    def disconnect(self, edge_id: str) -> None:
        self._commit(self.graph.without_edge(edge_id))

    # ── Selection and clipboard ───────────────────────────────────────────

    def select(self, node_ids: Iterable[str]) -> None:
        self.selection = {nid for nid in node_ids if self.graph.has_node(nid)}

    def select_all(self) -> None:
        self.selection = {n.id for n in self.graph.nodes}

    def clear_selection(self) -> None:
        self.selection = set()

    def copy_selection(self) -> int:
        nodes = [n for n in self.graph.nodes if n.id in self.selection]
        edges = [e for e in self.graph.edges
                 if e.source_node_id in self.selection and e.target_node_id in self.selection]
        self._clipboard = _Clipboard(nodes, edges)
        return len(nodes)

    def paste(self) -> List[Node]:
        """Insert the clipboard with fresh ids, offset from the originals; selects the copies."""
        if not self._clipboard.nodes:
            return []
        graph = self.graph
        id_map: Dict[str, str] = {}
        pasted: List[Node] = []
        for node in self._clipboard.nodes:
            count = len(graph.nodes_of_kind(node.kind)) + 1
            while graph.has_node(f"{node.kind.value}-{count}"):
                count += 1
            new_id = f"{node.kind.value}-{count}"
            id_map[node.id] = new_id
            copy = Node(new_id, node.kind, node.payload,
                        Position(node.position.x + PASTE_OFFSET, node.position.y + PASTE_OFFSET))
            graph = graph.with_node(copy)
            pasted.append(copy)
        for edge in self._clipboard.edges:
            source, target = id_map[edge.source_node_id], id_map[edge.target_node_id]
            graph = graph.with_edge(Edge(edge_id_for(source, target, edge.target_slot),
                                         source, target, edge.target_slot))
        self._commit(graph)
        self.selection = set(id_map.values())
        return pasted

    # ── History ───────────────────────────────────────────────────────────

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> bool:
        self.end_drag()
        graph = self.history.undo()
        if graph is None:
            return False
        self._set_graph(graph)
        self._notify()
        return True

    def redo(self) -> bool:
        self.end_drag()
        graph = self.history.redo()
        if graph is None:
            return False
        self._set_graph(graph)
        self._notify()
        return True

    def record_change(self, graph: Graph) -> bool:
        """
        Adopt a graph produced outside the editor operations (e.g. a burst of
        canvas change events). Recording goes through the history debounce.
        """
        self._ensure_open()
        self._set_graph(graph)
        recorded = self.history.push(graph)
        self._notify()
        return recorded

    # ── Load / compile / validate ─────────────────────────────────────────

    def load_graph(self, graph: Graph) -> None:
        """Replace the whole graph; the loaded state becomes the new history start."""
        self._ensure_open()
        self.end_drag()
        self.history.clear()
        self.selection = set()
        self._set_graph(graph)
        self.history.push(graph)
        self._notify()

    def load_rule(self, text: str, display_name: str = "",
                  layout: Optional[Dict[str, Any]] = None) -> Graph:
        """
        Decompile saved rule JSON into the canvas. ``layout`` is the block
        prepare_save() wrote; its positions replace the computed ones.

        Raises:
            SchemaError: the text or layout is malformed; the current graph is left untouched.
        """
        rule = deserialize_rule(text)
        graph = rule_to_graph(rule, display_name, layout)
        self.load_graph(graph)
        logger.info("Editor: loaded rule for target %s (%d nodes)", rule.root.target_id, len(graph.nodes))
        return graph

    def compile(self) -> RuleDefinition:
        return compile_graph(self.graph).rule

    def compile_with_source_map(self) -> CompiledRule:
        return compile_graph(self.graph)

    def serialize(self) -> str:
        return serialize_rule(self.compile())

    def validate(self) -> RuleValidation:
        return validate_rule(self.graph, self.metadata, self.settings.require_metadata)

    def prepare_save(self) -> Dict[str, Any]:
        """
        Build the payload handed to the persistence collaborator.

        Raises:
            RuleValidationError: listing every defect when the rule cannot be saved.
        """
        validation = self.validate()
        if not validation.valid:
            raise RuleValidationError(validation.errors)
        try:
            rule = self.compile()
        except CompilationError as exc:
            raise RuleValidationError([str(exc)]) from exc

        logger.info("Editor: rule '%s' ready to save", self.metadata.rule_code or self.metadata.name)
        return {
            "name": self.metadata.name,
            "ruleCode": self.metadata.rule_code,
            "eventType": self.metadata.event_type,
            "description": self.metadata.description,
            "ruleJson": rule_to_dict(rule),
            "layout": {
                "nodes": [{"id": n.id, "position": {"x": n.position.x, "y": n.position.y}}
                          for n in self.graph.nodes],
            },
        }

    def save(self) -> Dict[str, Any]:
        payload = self.prepare_save()
        if self.save_handler is not None:
            self.save_handler(payload)
        return payload

    # ── Testing ───────────────────────────────────────────────────────────

    @property
    def highlight(self) -> Highlight:
        return self.runner.highlight if self.runner else Highlight.empty()

    async def run_test(self, context: Union[TestContext, Dict[str, Any]]) -> Optional[TestOutcome]:
        self._ensure_open()
        if self.runner is None:
            raise RuntimeError("No evaluation engine configured")
        return await self.runner.run(self.graph, context)

    # ── Keyboard ──────────────────────────────────────────────────────────

    def _save_from_hotkey(self) -> None:
        try:
            self.save()
        except RuleValidationError as exc:
            logger.warning("Editor: save refused: %s", exc)

    def hotkey_handlers(self) -> HotkeyHandlers:
        return HotkeyHandlers(
            on_delete=self.delete_selection,
            on_undo=self.undo,
            on_redo=self.redo,
            on_save=self._save_from_hotkey,
            on_select_all=self.select_all,
            on_copy=self.copy_selection,
            on_paste=self.paste,
            on_escape=self.clear_selection,
        )

    def handle_key(self, event: KeyEvent, mac: bool = False) -> Optional[Shortcut]:
        if self._closed:
            return None
        return dispatch(event, self.hotkey_handlers(), mac)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Tear the editor down; replies to tests still in flight are dropped."""
        if self._drag_node is not None:
            self._drag_node = None
            self.history.rollback_transaction()
        if self.runner is not None:
            self.runner.close()
        self._listeners.clear()
        self._closed = True

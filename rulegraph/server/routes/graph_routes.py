"""
Rule canvas REST routes.

All routes are mounted under /api by main.py and operate on the single
editor session held by ``editor_state``.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel, Field

from rulegraph.bridge.models import TestContext
from rulegraph.bridge.scenarios import PRESET_SCENARIOS, find_scenario
from rulegraph.compiler.errors import CompilationError, RuleValidationError, SchemaError
from rulegraph.compiler.ir import RuleMetadata
from rulegraph.compiler.schema import rule_to_dict
from rulegraph.core.GraphPrimitives import Position
from rulegraph.core.Types import PRESET_FIELDS, NodeKind, Operator
from rulegraph.server.serializers.graph_serializer import (
    payload_from_dict,
    serialize_edge,
    serialize_highlight,
    serialize_node,
)
from rulegraph.server.state import editor_state

router = APIRouter()


def _require_node(node_id: str):
    node = editor_state.editor.graph.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail=f"Node '{node_id}' not found")
    return node


# ── GET /graph ────────────────────────────────────────────────────────────────

@router.get("/graph")
async def get_graph() -> Dict[str, Any]:
    return editor_state.snapshot()


# ── POST /nodes ───────────────────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    kind: str
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Dict[str, float]] = None


@router.post("/nodes", status_code=201)
async def create_node(body: CreateNodeBody) -> Dict[str, Any]:
    editor = editor_state.editor
    try:
        payload = payload_from_dict(body.kind, body.data, editor.settings.logic_slots)
        position = Position(body.position["x"], body.position["y"]) if body.position else None
        node = editor.add_node(payload, position)
    except (KeyError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return serialize_node(node)


# ── DELETE /nodes/:nodeId ─────────────────────────────────────────────────────

@router.delete("/nodes/{node_id}", status_code=204)
async def delete_node(node_id: str) -> Response:
    _require_node(node_id)
    editor_state.editor.delete_nodes([node_id])
    return Response(status_code=204)


# ── PUT /nodes/:nodeId/position ───────────────────────────────────────────────

class PositionBody(BaseModel):
    x: float
    y: float


@router.put("/nodes/{node_id}/position", status_code=204)
async def set_node_position(node_id: str, body: PositionBody) -> Response:
    _require_node(node_id)
    editor_state.editor.move_node(node_id, body.x, body.y)
    return Response(status_code=204)


# ── PUT /nodes/:nodeId/data ───────────────────────────────────────────────────

class PayloadBody(BaseModel):
    data: Dict[str, Any]


@router.put("/nodes/{node_id}/data")
async def set_node_data(node_id: str, body: PayloadBody) -> Dict[str, Any]:
    node = _require_node(node_id)
    editor = editor_state.editor
    try:
        payload = payload_from_dict(node.kind, body.data, editor.settings.logic_slots)
        updated = editor.update_payload(node_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return serialize_node(updated)


# ── POST /edges ───────────────────────────────────────────────────────────────

class EdgeBody(BaseModel):
    sourceNodeId: str
    targetNodeId: str
    targetSlot: Optional[str] = None


@router.post("/edges", status_code=201)
async def add_edge(body: EdgeBody) -> Dict[str, Any]:
    editor = editor_state.editor
    result = editor.connect(body.sourceNodeId, body.targetNodeId, body.targetSlot)
    if not result.valid:
        raise HTTPException(status_code=400, detail=result.reason)
    # the newest edge is the one just connected
    return serialize_edge(editor.graph.edges[-1])


# ── DELETE /edges/:edgeId ─────────────────────────────────────────────────────

@router.delete("/edges/{edge_id}", status_code=204)
async def delete_edge(edge_id: str) -> Response:
    editor = editor_state.editor
    if editor.graph.get_edge(edge_id) is None:
        raise HTTPException(status_code=404, detail=f"Edge '{edge_id}' not found")
    editor.disconnect(edge_id)
    return Response(status_code=204)


# ── POST /undo, /redo ─────────────────────────────────────────────────────────

@router.post("/undo")
async def undo() -> Dict[str, Any]:
    editor_state.editor.undo()
    return editor_state.snapshot()


@router.post("/redo")
async def redo() -> Dict[str, Any]:
    editor_state.editor.redo()
    return editor_state.snapshot()


# ── GET /compile ──────────────────────────────────────────────────────────────

@router.get("/compile")
async def compile_rule() -> Dict[str, Any]:
    try:
        compiled = editor_state.editor.compile_with_source_map()
    except CompilationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {
        "rule": rule_to_dict(compiled.rule),
        "actionNodeId": compiled.action_node_id,
        "sourceMap": compiled.source_map,
    }


# ── POST /validate ────────────────────────────────────────────────────────────

class MetadataBody(BaseModel):
    name: str = ""
    ruleCode: str = ""
    eventType: str = ""
    description: str = ""
    tags: List[str] = Field(default_factory=list)

    def to_metadata(self) -> RuleMetadata:
        return RuleMetadata(self.name, self.ruleCode, self.eventType, self.description, tuple(self.tags))


@router.post("/validate")
async def validate(body: Optional[MetadataBody] = None) -> Dict[str, Any]:
    editor = editor_state.editor
    if body is not None:
        editor.metadata = body.to_metadata()
    validation = editor.validate()
    return {"valid": validation.valid, "errors": validation.errors}


# ── GET /serialize, POST /load ────────────────────────────────────────────────

@router.get("/serialize")
async def serialize() -> Dict[str, Any]:
    try:
        return {"ruleJson": editor_state.editor.serialize()}
    except CompilationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


class LoadBody(BaseModel):
    ruleJson: str
    displayName: str = ""
    layout: Optional[Dict[str, Any]] = None


@router.post("/load")
async def load(body: LoadBody) -> Dict[str, Any]:
    try:
        editor_state.editor.load_rule(body.ruleJson, body.displayName, body.layout)
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return editor_state.snapshot()


# ── POST /save ────────────────────────────────────────────────────────────────

@router.post("/save")
async def save(body: MetadataBody) -> Dict[str, Any]:
    editor = editor_state.editor
    editor.metadata = body.to_metadata()
    try:
        return editor.save()
    except RuleValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors)


# ── POST /test ────────────────────────────────────────────────────────────────

class TestBody(TestContext):
    """A test context, or the key of a preset scenario to run instead."""

    scenario: Optional[str] = None

    def to_context(self) -> TestContext:
        if self.scenario is None:
            return TestContext.model_validate(self.model_dump(exclude={"scenario"}))
        preset = find_scenario(self.scenario)
        if preset is None:
            raise HTTPException(status_code=404, detail=f"Unknown test scenario '{self.scenario}'")
        return preset.context()


@router.post("/test")
async def run_test(body: TestBody) -> Dict[str, Any]:
    editor = editor_state.editor
    if editor.runner is None:
        raise HTTPException(status_code=503, detail="No evaluation engine configured")
    context = body.to_context()
    try:
        outcome = await editor.run_test(context)
    except CompilationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if outcome is None:
        # superseded by a newer test; the socket carries the newer result
        return {"discarded": True}
    return {
        "discarded": False,
        "token": outcome.token,
        "result": outcome.result.model_dump(),
        "highlight": serialize_highlight(outcome.highlight),
    }


# ── GET /highlight ────────────────────────────────────────────────────────────

@router.get("/highlight")
async def get_highlight() -> Dict[str, Any]:
    return serialize_highlight(editor_state.editor.highlight)


# ── GET /node-kinds ───────────────────────────────────────────────────────────

@router.get("/node-kinds")
async def list_node_kinds() -> List[str]:
    return [kind.value for kind in NodeKind]


# ── GET /fields, /operators ───────────────────────────────────────────────────

@router.get("/fields")
async def list_fields() -> List[Dict[str, str]]:
    return [preset._asdict() for preset in PRESET_FIELDS]


@router.get("/operators")
async def list_operators() -> List[Dict[str, str]]:
    return [{"value": op.value, "label": op.label, "arity": op.arity.value} for op in Operator]


# ── GET /test-scenarios ───────────────────────────────────────────────────────

@router.get("/test-scenarios")
async def list_test_scenarios() -> List[Dict[str, Any]]:
    return [scenario.to_dict() for scenario in PRESET_SCENARIOS]

"""
EditorState — the server's single RuleEditor session.

Built from environment settings on first import. When
``RULEGRAPH_ENGINE_URL`` is set an HttpEvaluationEngine is attached so the
test route works; otherwise testing is disabled. Graph changes and accepted
test results are forwarded to ``editor_events`` for the socket layer.
"""
from __future__ import annotations

import logging
from typing import Optional

from rulegraph.bridge.engine import EvaluationEngine, HttpEvaluationEngine
from rulegraph.bridge.runner import TestOutcome
from rulegraph.config import Settings, settings_from_env
from rulegraph.core.GraphPrimitives import Graph
from rulegraph.editor.editor import RuleEditor

from .events.event_emitter import GRAPH_CHANGED, TEST_RESULT, editor_events
from .serializers.graph_serializer import serialize_graph, serialize_highlight

logger = logging.getLogger(__name__)


class EditorState:
    """Owns the live editor and rebuilds it on reset()."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or settings_from_env()
        self.editor: RuleEditor = self._build(None)

    def _default_engine(self) -> Optional[EvaluationEngine]:
        if not self.settings.engine_url:
            logger.info("No RULEGRAPH_ENGINE_URL configured; rule testing is disabled")
            return None
        return HttpEvaluationEngine(self.settings.engine_url, timeout=self.settings.engine_timeout)

    def _build(self, engine: Optional[EvaluationEngine]) -> RuleEditor:
        editor = RuleEditor(settings=self.settings, engine=engine or self._default_engine())
        editor.on_change(self._graph_changed)
        if editor.runner is not None:
            editor.runner.on_result(self._test_result)
        return editor

    def reset(self, engine: Optional[EvaluationEngine] = None) -> RuleEditor:
        """Close the current editor and start an empty one."""
        self.editor.close()
        self.editor = self._build(engine)
        self._graph_changed(self.editor.graph)
        return self.editor

    # ── Event fan-out ────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        payload = serialize_graph(self.editor.graph)
        payload["canUndo"] = self.editor.can_undo
        payload["canRedo"] = self.editor.can_redo
        return payload

    def _graph_changed(self, graph: Graph) -> None:
        editor_events.fire(GRAPH_CHANGED, self.snapshot())

    def _test_result(self, outcome: TestOutcome) -> None:
        editor_events.fire(TEST_RESULT, {
            "token": outcome.token,
            "result": outcome.result.model_dump(),
            "highlight": serialize_highlight(outcome.highlight),
        })


# ---------------------------------------------------------------------------
# Module-level singleton, created once when this module is first imported.
# ---------------------------------------------------------------------------

editor_state = EditorState()

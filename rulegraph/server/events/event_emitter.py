"""
EditorEvents — fan-out of editor events to registered listeners.

Event names:
    GRAPH_CHANGED   payload: serialized graph plus canUndo / canRedo
    TEST_RESULT     payload: token, result, highlight
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

GRAPH_CHANGED = "GRAPH_CHANGED"
TEST_RESULT = "TEST_RESULT"

Listener = Callable[[str, Dict[str, Any]], None]


class EditorEvents:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def on_event(self, callback: Listener) -> None:
        """Register a callback that receives every (event name, payload) pair."""
        self._listeners.append(callback)

    def fire(self, name: str, payload: Dict[str, Any]) -> None:
        for cb in self._listeners:
            try:
                cb(name, payload)
            except Exception:
                # a broken listener must not abort the edit that fired the event
                logger.exception("Event listener failed for %s", name)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

editor_events = EditorEvents()

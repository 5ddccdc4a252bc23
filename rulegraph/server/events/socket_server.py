"""
Socket.IO server — pushes editor events to connected canvas clients.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Set

import socketio

from .event_emitter import editor_events

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Socket.IO instance (async, ASGI mode)
# ---------------------------------------------------------------------------

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


# ---------------------------------------------------------------------------
# Event fan-out: editor_events → Socket.IO emit
# ---------------------------------------------------------------------------

# emits in flight; held so they are not collected before they run
_pending_emits: Set[asyncio.Task] = set()


def _emit_done(task: asyncio.Task) -> None:
    _pending_emits.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning("Socket emit failed: %s", exc)


def _on_event(name: str, payload: Dict[str, Any]) -> None:
    """
    Called synchronously by EditorEvents.fire().
    Schedules an async emit on the running event loop; outside a loop
    (scripts, sync tests) there is nobody to notify.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(sio.emit(name, payload))
    _pending_emits.add(task)
    task.add_done_callback(_emit_done)


editor_events.on_event(_on_event)


# ---------------------------------------------------------------------------
# Socket.IO lifecycle events
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict) -> None:
    logger.debug("Socket client connected: %s", sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug("Socket client disconnected: %s", sid)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)

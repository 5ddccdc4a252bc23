"""
HTTP and socket entry point for the rule canvas.

    python -m rulegraph.server.main
    uvicorn rulegraph.server.main:socket_app --port 3001

REST routes live under /api; Socket.IO clients connect at the root and
receive GRAPH_CHANGED / TEST_RESULT pushes.
"""
from __future__ import annotations

import os

from rulegraph.config import configure_logging, load_settings

# RULEGRAPH_* settings must be in place before the editor session is built
settings = load_settings()
configure_logging(settings)

from fastapi import FastAPI  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

from rulegraph.server.events.socket_server import create_socket_app  # noqa: E402
from rulegraph.server.routes.graph_routes import router  # noqa: E402

app = FastAPI(title="RuleGraph API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router, prefix="/api")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "testing": bool(settings.engine_url)}


# what uvicorn serves: socket traffic is handled here, the rest goes to app
socket_app = create_socket_app(app)


def run() -> None:
    import uvicorn

    uvicorn.run(
        "rulegraph.server.main:socket_app",
        host=os.environ.get("RULEGRAPH_HOST", "0.0.0.0"),
        port=int(os.environ.get("RULEGRAPH_PORT", "3001")),
    )


if __name__ == "__main__":
    run()

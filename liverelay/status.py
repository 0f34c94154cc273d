"""
FastAPI application — read-only status of a running relay.
"""

from __future__ import annotations

import logging
import threading

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from .reader import LiveReader

logger = logging.getLogger(__name__)


# ── API models ──────────────────────────────────────────────────────
class StatusResponse(BaseModel):
    state: str
    terminal: bool
    base_url: str
    next_segment_index: int
    segments_forwarded: int
    bytes_forwarded: int
    refreshes: int


def create_app(reader: LiveReader) -> FastAPI:
    app = FastAPI(title="liverelay – status")

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok"}

    @app.get("/api/status", response_model=StatusResponse)
    async def status() -> StatusResponse:
        s = reader.status()
        return StatusResponse(
            state=s.state.value,
            terminal=s.state.terminal,
            base_url=s.base_url,
            next_segment_index=s.next_segment_index,
            segments_forwarded=s.segments_forwarded,
            bytes_forwarded=s.bytes_forwarded,
            refreshes=s.refreshes,
        )

    return app


def serve_status(reader: LiveReader, port: int, host: str = "127.0.0.1") -> threading.Thread:
    """Serve the status API from a daemon thread."""
    config = uvicorn.Config(create_app(reader), host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="status-server", daemon=True)
    thread.start()
    logger.info("Status API listening on http://%s:%d/api/status", host, port)
    return thread

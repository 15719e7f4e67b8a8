"""FastAPI application exposing the host to a UI."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from stickybrain.config import AppConfig
from stickybrain.embedding.encoder import build_embedding_service
from stickybrain.host.service import Host
from stickybrain.index.factory import open_vector_index
from stickybrain.index.indexer import Indexer
from stickybrain.index.memory import InMemoryVectorIndex

LOGGER = logging.getLogger(__name__)

MAX_GOALS_CHARS = 4000


class GoalsPayload(BaseModel):
    goals: str


def _run_index_job(config: AppConfig) -> dict[str, Any]:
    embedder = build_embedding_service(config)
    vector_index = open_vector_index(config)
    stats = Indexer(embedder, vector_index).rebuild(Path(config.corpus_dir))
    return {
        "notes": stats.notes,
        "records": stats.records,
        "failed": stats.failed,
        "processed_files": [str(path) for path in stats.processed_files],
        "persistent": not isinstance(vector_index, InMemoryVectorIndex),
    }


def create_app(host: Host, *, manage_host: bool = True) -> FastAPI:
    """Build the API around ``host``.

    With ``manage_host`` the host loop is started and stopped with the server.
    """
    app = FastAPI(title="StickyBrain", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.host = host

    if manage_host:

        @app.on_event("startup")
        async def startup_event() -> None:
            host.start()

        @app.on_event("shutdown")
        async def shutdown_event() -> None:
            await host.stop()

    @app.get("/status")
    async def status() -> dict[str, Any]:
        return host.status()

    @app.get("/result")
    async def latest_result() -> dict[str, Any]:
        return {**host.channel.snapshot(), "busy": host.gate.is_busy}

    @app.post("/refresh")
    async def refresh() -> dict[str, Any]:
        started = host.refresh()
        return {"started": started, "busy": host.gate.is_busy}

    @app.post("/index")
    async def index_notes() -> dict[str, Any]:
        corpus_dir = Path(host.config.corpus_dir)
        if not corpus_dir.is_dir():
            raise HTTPException(status_code=404, detail=f"Notes directory not found: {corpus_dir}")
        try:
            stats = await asyncio.to_thread(_run_index_job, host.config)
        except Exception as exc:
            LOGGER.exception("Indexing failed: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"status": "ok", "stats": stats}

    @app.get("/goals")
    async def load_goals() -> dict[str, str]:
        return {"goals": host.config.load_goals()}

    @app.put("/goals")
    async def save_goals(payload: GoalsPayload) -> dict[str, str]:
        if len(payload.goals) > MAX_GOALS_CHARS:
            raise HTTPException(status_code=400, detail="Goals text too long")
        try:
            host.config.save_goals(payload.goals)
        except OSError as exc:
            LOGGER.error("Unable to save goals: %s", exc)
            raise HTTPException(status_code=500, detail=str(exc))
        return {"status": "ok"}

    return app

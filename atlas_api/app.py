#!/usr/bin/env python3
"""
Landmark Atlas — Search API

FastAPI server over the search orchestrator and the dedup engine:
  • open search and landmark lookups
  • admin-only manual curation (create, edit, delete or hide a landmark)
  • admin-only batch reconciliation and blacklist inspection

Usage:
    uvicorn atlas_api.app:app --reload --port 8000
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth import auth_middleware
from .routes import health, landmarks, maintenance, search
from .session import AtlasSession

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Landmark Atlas",
    version="0.1.0",
    description="Landmark search with cross-source deduplication",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(auth_middleware)

app.include_router(health.router)
app.include_router(search.router)
app.include_router(landmarks.router)
app.include_router(maintenance.router)


@app.on_event("startup")
async def startup():
    app.state.server_started_at = datetime.now(timezone.utc)
    # Tests install their own session before startup runs
    if getattr(app.state, "session", None) is None:
        app.state.session = AtlasSession.from_settings()
    await app.state.session.start()
    logger.info("Landmark Atlas started with %d cached landmarks", len(app.state.session.cache))


@app.on_event("shutdown")
async def shutdown():
    session = getattr(app.state, "session", None)
    if session is not None:
        await session.close()

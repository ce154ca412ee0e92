"""Health check endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from ..helpers import iso

router = APIRouter()


@router.get("/api/health")
async def health(request: Request):
    """Health check — reports cache state, blacklist size, version, uptime. Always open."""
    session = getattr(request.app.state, "session", None)
    cache_loaded = bool(session is not None and session.cache.loaded)

    server_started_at = request.app.state.server_started_at
    uptime_seconds = round((datetime.now(timezone.utc) - server_started_at).total_seconds())

    return JSONResponse(
        status_code=200 if cache_loaded else 503,
        content={
            "status": "healthy" if cache_loaded else "degraded",
            "version": request.app.version,
            "cache_loaded": cache_loaded,
            "snapshot_size": len(session.cache) if session is not None else 0,
            "blacklist_size": len(session.blacklist) if session is not None else 0,
            "background_tasks": session.orchestrator.pending_tasks if session is not None else 0,
            "generative_enabled": bool(session is not None and session.generative is not None),
            "places_enabled": bool(session is not None and session.places is not None),
            "started_at": iso(server_started_at),
            "uptime_seconds": uptime_seconds,
        },
    )

"""Search endpoints: coordinate-anchored and free-text."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from atlas_dedup.algorithms.geo_proximity import Coordinate

from ..errors import AtlasError
from ..helpers import get_session, http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/search")
async def search(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Anchor latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Anchor longitude"),
    radius_m: float | None = Query(None, gt=0, le=500_000, description="Search radius in metres"),
    q: str | None = Query(None, description="Place name passed to the discovery lookup"),
) -> dict[str, Any]:
    """Stored landmarks near a point, expanded with discovered ones when few are stored."""
    session = get_session(request)
    try:
        result = await session.orchestrator.search(Coordinate(lat, lng), radius_m, query=q)
        return result.to_dict()
    except HTTPException:
        raise
    except AtlasError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("Search failed at (%s, %s)", lat, lng)
        raise HTTPException(status_code=500, detail=f"Search failed: {e}")


@router.get("/api/search/text")
async def search_text(
    request: Request,
    q: str = Query(..., min_length=1, description="City, address or place name"),
    radius_m: float | None = Query(None, gt=0, le=500_000, description="Search radius in metres"),
) -> dict[str, Any]:
    """Geocode a place name, then search around it."""
    session = get_session(request)
    try:
        result = await session.orchestrator.search_text(q, radius_m)
        return result.to_dict()
    except HTTPException:
        raise
    except AtlasError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("Text search failed for %r", q)
        raise HTTPException(status_code=500, detail=f"Search failed: {e}")

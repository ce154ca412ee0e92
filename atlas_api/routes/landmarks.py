"""
Landmark endpoints.

Reads (nearby, nearest, by name) are public and served from the store only,
no discovery.  Manual create, edit and delete require the admin tier.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from atlas_dedup.algorithms.geo_proximity import Coordinate, haversine_m
from atlas_dedup.records import Provenance, Record

from ..auth import ANONYMOUS, AuthContext, require_tier
from ..errors import AtlasError
from ..helpers import get_session, http_error
from ..models import LandmarkCreateRequest, LandmarkUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/landmarks/nearby")
async def nearby_landmarks(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude"),
    radius_m: float = Query(5_000, gt=0, le=500_000, description="Search radius in metres"),
    limit: int = Query(100, ge=1, le=1000),
) -> dict[str, Any]:
    """Stored landmarks within a radius, closest first."""
    session = get_session(request)
    center = Coordinate(lat, lng)
    try:
        records = await session.cache.near(center, radius_m)
    except AtlasError as e:
        raise http_error(e)

    ranked = sorted(records, key=lambda r: haversine_m(center, r.coordinates))[:limit]
    return {
        "center": center.to_dict(),
        "radius_m": radius_m,
        "count": len(ranked),
        "data": [
            {**r.to_dict(), "distance_m": round(haversine_m(center, r.coordinates), 1)}
            for r in ranked
        ],
    }


@router.get("/api/landmarks/nearest")
async def nearest_landmark(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, description="Latitude"),
    lng: float = Query(..., ge=-180, le=180, description="Longitude"),
) -> dict[str, Any]:
    """The closest stored landmark, searching up to the nearest-search radius."""
    session = get_session(request)
    center = Coordinate(lat, lng)
    try:
        record = await session.orchestrator.find_nearest(center)
    except HTTPException:
        raise
    except AtlasError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("Nearest lookup failed at (%s, %s)", lat, lng)
        raise HTTPException(status_code=500, detail=str(e))
    return {**record.to_dict(), "distance_m": round(haversine_m(center, record.coordinates), 1)}


@router.get("/api/landmarks/by-name")
async def landmark_by_name(
    request: Request,
    name: str = Query(..., min_length=1, description="Exact landmark name"),
) -> dict[str, Any]:
    session = get_session(request)
    try:
        record = await session.orchestrator.lookup_by_name(name)
    except HTTPException:
        raise
    except AtlasError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception("Name lookup failed for %r", name)
        raise HTTPException(status_code=500, detail=str(e))
    return record.to_dict()


# ---------------------------------------------------------------------------
# Manual curation (admin)
# ---------------------------------------------------------------------------


def _curation_error(e: Exception, what: str) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, AtlasError):
        return http_error(e)
    logger.exception("%s failed", what)
    return HTTPException(status_code=500, detail=f"{what} failed: {e}")


@router.post(
    "/api/landmarks",
    status_code=201,
    dependencies=[Depends(require_tier("admin"))],
)
async def create_landmark(request: Request, body: LandmarkCreateRequest) -> dict[str, Any]:
    """Add a hand-entered landmark. 409 when the store already has it."""
    session = get_session(request)
    auth: AuthContext = getattr(request.state, "auth", ANONYMOUS)

    fields = body.model_dump(exclude={"lat", "lng"})
    draft = Record(
        id=f"manual-{uuid.uuid4().hex[:12]}",
        coordinates=Coordinate(body.lat, body.lng),
        provenance=Provenance.MANUAL,
        **fields,
    )
    try:
        record = await session.create_landmark(draft, actor_id=auth.actor_id)
    except Exception as e:
        raise _curation_error(e, "Manual entry")
    return {"success": True, "data": record.to_dict()}


@router.patch(
    "/api/landmarks/{record_id}",
    dependencies=[Depends(require_tier("admin"))],
)
async def update_landmark(request: Request, record_id: str, body: LandmarkUpdateRequest) -> dict[str, Any]:
    """Edit a stored landmark; only the fields sent are changed."""
    session = get_session(request)
    auth: AuthContext = getattr(request.state, "auth", ANONYMOUS)

    patch = body.model_dump(exclude_unset=True)
    lat, lng = patch.pop("lat", None), patch.pop("lng", None)
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=422, detail="lat and lng must be sent together")
    if lat is not None:
        patch["coordinates"] = Coordinate(lat, lng)

    try:
        record = await session.update_landmark(record_id, patch, actor_id=auth.actor_id)
    except Exception as e:
        raise _curation_error(e, f"Edit of {record_id}")
    return {"success": True, "data": record.to_dict()}


@router.delete(
    "/api/landmarks/{record_id}",
    dependencies=[Depends(require_tier("admin"))],
)
async def delete_landmark(
    request: Request,
    record_id: str,
    keep_row: bool = Query(False, description="Hide only: blacklist without deleting the store row"),
) -> dict[str, Any]:
    """Delete (or hide) a landmark; either way its id is blacklisted."""
    session = get_session(request)
    auth: AuthContext = getattr(request.state, "auth", ANONYMOUS)
    try:
        outcome = await session.remove_landmark(record_id, keep_row=keep_row, actor_id=auth.actor_id)
    except Exception as e:
        raise _curation_error(e, f"Removal of {record_id}")
    return {"success": True, **outcome}

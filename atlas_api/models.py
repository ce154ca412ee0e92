"""Pydantic request models for the Landmark Atlas API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ReconcileRequest(BaseModel):
    dry_run: bool = Field(
        False,
        description="Plan only: report groups and scheduled deletions without touching the store",
    )
    delay: float | None = Field(
        None,
        ge=0,
        le=10,
        description="Seconds to wait after each delete call (defaults to matching_rules.yaml)",
    )


class LandmarkCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=300)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    location_text: str | None = Field(
        None,
        description="Display address; reverse geocoded from lat/lng when omitted",
    )
    city: str | None = None
    country: str | None = None
    category: str | None = Field(None, description="Architectural style or kind of landmark")
    description: str | None = None
    attribution_name: str | None = Field(None, description="Architect or author")
    external_ref: str | None = Field(None, description="Google place id")
    image_url: str | None = None
    canonical_map_url: str | None = None
    prioritized: bool = False


class LandmarkUpdateRequest(BaseModel):
    """Only the fields sent are changed; lat and lng must be sent together."""

    name: str | None = Field(None, min_length=1, max_length=300)
    lat: float | None = Field(None, ge=-90, le=90)
    lng: float | None = Field(None, ge=-180, le=180)
    location_text: str | None = None
    city: str | None = None
    country: str | None = None
    category: str | None = None
    description: str | None = None
    attribution_name: str | None = None
    external_ref: str | None = None
    image_url: str | None = None
    canonical_map_url: str | None = None
    prioritized: bool | None = None

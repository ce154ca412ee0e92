#!/usr/bin/env python3
"""
Landmark Atlas — Geospatial Proximity

Great-circle distance between landmark coordinates using the Haversine
formula, plus the bounding-box pre-filter used by radius queries.

The pair (0, 0) is the "no location" sentinel written by upstream sources
when a landmark has no coordinates; it is never treated as a real point.

No external geo-libraries required — pure math with stdlib.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 coordinate pair."""
    lat: float
    lng: float

    def is_valid(self) -> bool:
        """True for two finite numbers that are not the (0, 0) sentinel."""
        try:
            lat = float(self.lat)
            lng = float(self.lng)
        except (TypeError, ValueError):
            return False
        if not (math.isfinite(lat) and math.isfinite(lng)):
            return False
        return not (lat == 0 and lng == 0)

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def parse(cls, lat: Any, lng: Any) -> "Coordinate":
        """
        Build a coordinate from loosely-typed values (strings from the store,
        None from partial rows).  Unparseable values become NaN so that
        is_valid() rejects them instead of raising.
        """
        return cls(lat=_to_float(lat), lng=_to_float(lng))


def _to_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


# ---------------------------------------------------------------------------
# Core distance calculation
# ---------------------------------------------------------------------------


def haversine_m(coord_a: Coordinate, coord_b: Coordinate) -> float:
    """
    Compute the great-circle distance in metres between two WGS84 points
    using the Haversine formula.
    """
    lat1 = math.radians(coord_a.lat)
    lat2 = math.radians(coord_b.lat)
    dlat = math.radians(coord_b.lat - coord_a.lat)
    dlng = math.radians(coord_b.lng - coord_a.lng)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def within_radius(
    center: Coordinate,
    coord: Coordinate,
    radius_m: float,
) -> bool:
    """True when coord is a real location no further than radius_m from center."""
    if not coord.is_valid():
        return False
    return haversine_m(center, coord) <= radius_m


# ---------------------------------------------------------------------------
# Candidate filtering
# ---------------------------------------------------------------------------


def bounding_box(
    center: Coordinate,
    radius_m: float,
) -> tuple[float, float, float, float]:
    """
    Return a lat/lng bounding box that encloses a circle of the given radius
    around the center coordinate.

    Returns (min_lat, max_lat, min_lng, max_lng) in degrees.  Near the poles
    the longitude span is widened to the full range.
    """
    lat_delta = math.degrees(radius_m / EARTH_RADIUS_M)
    cos_lat = math.cos(math.radians(center.lat))
    if cos_lat < 1e-9:
        lng_delta = 180.0
    else:
        lng_delta = min(180.0, lat_delta / cos_lat)

    return (
        center.lat - lat_delta,
        center.lat + lat_delta,
        center.lng - lng_delta,
        center.lng + lng_delta,
    )


def find_within_radius(
    center: Coordinate,
    items: Iterable[Any],
    radius_m: float,
    *,
    coords_of=lambda item: item.coordinates,
) -> list[Any]:
    """
    Filter items to those whose coordinates lie within radius_m of center.

    Invalid coordinates are skipped.  A bounding-box pre-filter runs before
    the exact Haversine check; the box is skipped when it wraps the
    antimeridian.  Input order is preserved.
    """
    min_lat, max_lat, min_lng, max_lng = bounding_box(center, radius_m)
    use_box = -180.0 <= min_lng and max_lng <= 180.0

    nearby = []
    for item in items:
        coord = coords_of(item)
        if coord is None or not coord.is_valid():
            continue
        if use_box and not (
            min_lat <= coord.lat <= max_lat and min_lng <= coord.lng <= max_lng
        ):
            continue
        if haversine_m(center, coord) <= radius_m:
            nearby.append(item)
    return nearby

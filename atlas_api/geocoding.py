"""Free-text place resolution using OpenStreetMap Nominatim.

Nominatim's usage policy requires an identifying User-Agent and at most
about one request per second, so calls share a throttle.  Results (including
misses) are memoized for the life of the process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

import httpx

from atlas_dedup.algorithms.geo_proximity import Coordinate

from . import settings
from .helpers import json_body, send

logger = logging.getLogger(__name__)

SOURCE = "geocoding"


class Geocoder:
    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        user_agent: str = "LandmarkAtlas/0.1",
        *,
        min_interval_s: float = 1.0,
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.min_interval_s = min_interval_s
        self._headers = {"User-Agent": user_agent}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_request = 0.0
        self._cache: dict[str, Coordinate | None] = {}
        self._reverse_cache: dict[tuple[float, float], str | None] = {}

    @classmethod
    def from_settings(cls) -> "Geocoder":
        return cls(
            settings.NOMINATIM_CONFIG["base_url"],
            settings.NOMINATIM_CONFIG["user_agent"],
            min_interval_s=settings.NOMINATIM_CONFIG["min_interval_s"],
            timeout=settings.HTTP_TIMEOUT,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _throttled_get(self, path: str, params: dict[str, Any]) -> Any:
        async with self._lock:
            wait = self.min_interval_s - (time.monotonic() - self._last_request)
            if wait > 0:
                await self._sleep(wait)
            self._last_request = time.monotonic()
            response = await send(
                self._client, "GET", f"{self.base_url}{path}", source=SOURCE,
                params=params, headers=self._headers,
            )
        return json_body(response, SOURCE)

    async def resolve(self, text: str) -> Coordinate | None:
        """Coordinates of the best match for a place name, or None."""
        key = " ".join((text or "").lower().split())
        if not key:
            return None
        if key in self._cache:
            return self._cache[key]

        results = await self._throttled_get("/search", {"q": text, "format": "json", "limit": 1})
        coord = None
        if isinstance(results, list) and results:
            candidate = Coordinate.parse(results[0].get("lat"), results[0].get("lon"))
            if candidate.is_valid():
                coord = candidate
        if coord is None:
            logger.info("Geocoding found nothing for %r", text)
        self._cache[key] = coord
        return coord

    async def reverse(self, coord: Coordinate) -> str | None:
        """Short address ("road, city, country") for a coordinate, or None."""
        if not coord.is_valid():
            return None
        key = (round(coord.lat, 6), round(coord.lng, 6))
        if key in self._reverse_cache:
            return self._reverse_cache[key]

        data = await self._throttled_get(
            "/reverse",
            {"lat": coord.lat, "lon": coord.lng, "format": "json", "zoom": 18, "addressdetails": 1},
        )
        label = None
        if isinstance(data, dict) and data.get("address"):
            address = data["address"]
            parts = []
            road = address.get("road")
            if road:
                number = address.get("house_number")
                parts.append(f"{number} {road}" if number else road)
            for keys in (("suburb", "neighbourhood"), ("city", "town", "village"), ("state",), ("country",)):
                value = next((address[k] for k in keys if address.get(k)), None)
                if value:
                    parts.append(value)
            label = ", ".join(parts) or data.get("display_name")
        self._reverse_cache[key] = label
        return label

"""
Landmark Atlas — Place Details Enrichment

Fills in image_url and canonical_map_url for records that carry an
external_ref (a Google place id) but no image, using the Places Details API.
The first photo reference becomes a Places Photo URL.

Enrichment never overwrites a present field and never fails a search:
per-record errors are logged and the record is returned unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from atlas_dedup.records import Record, is_blank, overlay

from . import settings
from .errors import AtlasError, NotFoundError, PartialEnrichmentFailure, RateLimitError, TransientIOError
from .helpers import json_body, send

logger = logging.getLogger(__name__)

SOURCE = "places"
DEFAULT_BATCH_SIZE = 20
PHOTO_MAX_WIDTH = 1200


def needs_enrichment(record: Record) -> bool:
    return not is_blank(record.external_ref) and is_blank(record.image_url)


class PlacesEnricher:
    """Client for Places Details."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://maps.googleapis.com/maps/api/place",
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls) -> "PlacesEnricher":
        return cls(
            settings.PLACES_CONFIG["api_key"],
            base_url=settings.PLACES_CONFIG["base_url"],
            timeout=settings.HTTP_TIMEOUT,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def photo_url(self, photo_reference: str) -> str:
        return (
            f"{self.base_url}/photo?maxwidth={PHOTO_MAX_WIDTH}"
            f"&photo_reference={quote(photo_reference)}&key={self.api_key}"
        )

    async def details_for(self, external_ref: str) -> dict[str, str]:
        """
        Image and map URLs for a place id.

        Returns a dict with "image_url" and/or "canonical_map_url"; keys are
        absent when the place has no photo or URL.
        """
        if not self.api_key:
            raise TransientIOError("Places API key is not configured", source=SOURCE)

        response = await send(
            self._client, "GET", f"{self.base_url}/details/json", source=SOURCE,
            params={"place_id": external_ref, "fields": "place_id,url,photos", "key": self.api_key},
        )
        data = json_body(response, SOURCE)
        status = data.get("status")
        if status == "OVER_QUERY_LIMIT":
            raise RateLimitError(f"Places quota reached for {external_ref}", source=SOURCE)
        if status in ("NOT_FOUND", "ZERO_RESULTS", "INVALID_REQUEST"):
            raise NotFoundError(f"Place {external_ref} not found ({status})", source=SOURCE)
        if status != "OK" or not data.get("result"):
            raise TransientIOError(
                f"Places details for {external_ref} failed: {status} {data.get('error_message', '')}",
                source=SOURCE,
            )

        result = data["result"]
        details: dict[str, str] = {}
        photos = result.get("photos") or []
        if photos and photos[0].get("photo_reference"):
            details["image_url"] = self.photo_url(photos[0]["photo_reference"])
        if result.get("url"):
            details["canonical_map_url"] = result["url"]
        return details

    async def enrich(self, record: Record) -> Record:
        """Fill the record's empty image / map URL; raises PartialEnrichmentFailure."""
        try:
            details = await self.details_for(record.external_ref)
        except AtlasError as e:
            raise PartialEnrichmentFailure(
                f"Could not enrich {record.id} ({record.name}): {e.message}", source=SOURCE
            ) from e
        if not details:
            return record
        filled = Record(id=record.id, name=record.name, **details)
        return overlay(record, filled)

    async def _enrich_or_keep(self, record: Record) -> Record:
        try:
            return await self.enrich(record)
        except PartialEnrichmentFailure as e:
            logger.warning("%s", e.message)
            return record

    async def enrich_batch(
        self,
        records: list[Record],
        limit: int = DEFAULT_BATCH_SIZE,
    ) -> list[Record]:
        """
        Enrich up to ``limit`` eligible records concurrently.

        Returns a new list in the input order; ineligible, over-limit and
        failed records are passed through unchanged.
        """
        eligible = [i for i, r in enumerate(records) if needs_enrichment(r)][:limit]
        if not eligible:
            return list(records)

        enriched = await asyncio.gather(*(self._enrich_or_keep(records[i]) for i in eligible))
        out = list(records)
        for i, record in zip(eligible, enriched):
            out[i] = record
        changed = sum(1 for i in eligible if out[i] is not records[i])
        logger.info("Enriched %d of %d eligible records", changed, len(eligible))
        return out

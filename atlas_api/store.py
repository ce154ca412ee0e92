"""
Landmark Atlas — Persistent Store Client

Async client for the landmark table of a Baserow-style REST rows API.

Row ids are embedded in record ids as "store-<id>".  Column mapping:

    name              → name
    lat, lng (text)   → coordinates (missing → (0, 0) "no location")
    location          → location_text (fallback "city, country")
    city, country     → city, country
    style             → category
    notes             → description
    architect         → attribution_name
    google_place_id   → external_ref
    image_url         → image_url (markdown links unwrapped)
    Gmaps_url         → canonical_map_url
    is_prioritized    → prioritized (derived when the column is empty)

The rows API has no geo queries, so regional reads fetch every page and
filter by distance locally.

Usage:
    store = RowStore.from_settings()
    rows = await store.fetch_all()
    await store.aclose()
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from atlas_dedup.algorithms.geo_proximity import Coordinate, find_within_radius
from atlas_dedup.algorithms.name_similarity import normalize_name
from atlas_dedup.records import Provenance, Record, store_record_id, store_row_id

from . import settings
from .errors import NotFoundError, TransientIOError, ValidationError
from .helpers import json_body, send

logger = logging.getLogger(__name__)

SOURCE = "store"
PAGE_SIZE = 200
EXISTING_MATCH_RADIUS_M = 1_000.0

_MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")

# Record attribute → store column, for attributes stored verbatim as text
_TEXT_COLUMNS = {
    "name": "name",
    "location_text": "location",
    "city": "city",
    "country": "country",
    "category": "style",
    "description": "notes",
    "attribution_name": "architect",
    "external_ref": "google_place_id",
    "image_url": "image_url",
    "canonical_map_url": "Gmaps_url",
}


# ---------------------------------------------------------------------------
# Row ↔ record conversion
# ---------------------------------------------------------------------------


def unwrap_markdown_url(value: str | None) -> str | None:
    """'[photo](https://x/y.jpg)' → 'https://x/y.jpg'; plain URLs pass through."""
    if not value:
        return None
    m = _MARKDOWN_LINK.search(value)
    if m:
        return m.group(2)
    return value


def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _derive_prioritized(row: dict[str, Any]) -> bool:
    flag = row.get("is_prioritized")
    if flag is not None:
        return bool(flag)
    style = (row.get("style") or "").lower()
    notes = (row.get("notes") or "").lower()
    if "art deco" not in style:
        return False
    return bool(row.get("architect")) or "famous" in notes or "historic" in notes


def row_to_record(row: dict[str, Any]) -> Record:
    """Convert a store row into a Record."""
    city = _blank_to_none(row.get("city"))
    country = _blank_to_none(row.get("country"))
    location = _blank_to_none(row.get("location"))
    if location is None:
        location = ", ".join(p for p in (city, country) if p) or None

    return Record(
        id=store_record_id(row["id"]),
        name=(row.get("name") or "").strip(),
        coordinates=Coordinate.parse(row.get("lat"), row.get("lng")),
        location_text=location,
        city=city,
        country=country,
        category=_blank_to_none(row.get("style")),
        description=_blank_to_none(row.get("notes")),
        attribution_name=_blank_to_none(row.get("architect")),
        external_ref=_blank_to_none(row.get("google_place_id")),
        image_url=unwrap_markdown_url(_blank_to_none(row.get("image_url"))),
        canonical_map_url=_blank_to_none(row.get("Gmaps_url")),
        provenance=Provenance.PERSISTENT,
        prioritized=_derive_prioritized(row),
    )


def _split_location(location: str | None) -> tuple[str, str]:
    """'Warsaw, Poland' → ('Warsaw', 'Poland'); first and last comma parts."""
    parts = [p.strip() for p in (location or "").split(",") if p.strip()]
    if len(parts) >= 2:
        return parts[0], parts[-1]
    return "", ""


def patch_to_row(patch: dict[str, Any]) -> dict[str, Any]:
    """Translate a record-attribute patch into store columns."""
    row: dict[str, Any] = {}
    for attr, value in patch.items():
        if attr in _TEXT_COLUMNS:
            row[_TEXT_COLUMNS[attr]] = value or ""
        elif attr == "coordinates":
            row["lat"] = str(value.lat)
            row["lng"] = str(value.lng)
        elif attr == "prioritized":
            row["is_prioritized"] = bool(value)
        # provenance and source_metadata have no columns
    return row


def record_to_row(record: Record) -> dict[str, Any]:
    """Full row payload for a new record; city/country fall back to the location text."""
    row = patch_to_row({attr: getattr(record, attr) for attr in _TEXT_COLUMNS})
    row.update(patch_to_row({"coordinates": record.coordinates, "prioritized": record.prioritized}))
    if not row["city"] or not row["country"]:
        city, country = _split_location(record.location_text)
        row["city"] = row["city"] or city
        row["country"] = row["country"] or country
    return row


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class RowStore:
    """The persistent landmark table."""

    def __init__(
        self,
        base_url: str,
        table_id: str,
        token: str,
        *,
        page_size: int = PAGE_SIZE,
        timeout: float = 20.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.table_id = table_id
        self.page_size = page_size
        self._headers = {"Authorization": f"Token {token}"}
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, page_size: int = PAGE_SIZE) -> "RowStore":
        return cls(
            settings.STORE_CONFIG["base_url"],
            settings.STORE_CONFIG["table_id"],
            settings.STORE_CONFIG["token"],
            page_size=page_size,
            timeout=settings.HTTP_TIMEOUT,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _rows_url(self, row_id: int | None = None) -> str:
        base = f"/api/database/rows/table/{self.table_id}/"
        return base if row_id is None else f"{base}{row_id}/"

    def _row_id(self, record_id: str | int) -> int:
        row_id = store_row_id(record_id)
        if row_id is None:
            raise ValidationError(f"Not a store record id: {record_id!r}", source=SOURCE)
        return row_id

    async def _get_page(self, page: int, extra: dict[str, Any] | None = None) -> dict[str, Any]:
        params = {"user_field_names": "true", "page": page, "size": self.page_size}
        if extra:
            params.update(extra)
        response = await send(
            self._client, "GET", self._rows_url(), source=SOURCE,
            params=params, headers=self._headers,
        )
        data = json_body(response, SOURCE)
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise TransientIOError("store returned an unexpected page shape", source=SOURCE)
        return data

    # -- reads ---------------------------------------------------------------

    async def fetch_all(self, page: int | None = None) -> list[Record]:
        """
        Every record in the table, following ``next`` links page by page.

        With ``page`` set, only that page is returned.
        """
        if page is not None:
            data = await self._get_page(page)
            return [row_to_record(r) for r in data["results"]]

        rows: list[dict[str, Any]] = []
        current = 1
        while True:
            data = await self._get_page(current)
            rows.extend(data["results"])
            if not data.get("next"):
                break
            current += 1

        logger.info("Fetched %d rows from store table %s (%d pages)", len(rows), self.table_id, current)
        return [row_to_record(r) for r in rows]

    async def fetch_near(self, center: Coordinate, radius_m: float) -> list[Record]:
        """Records within radius_m of center; invalid coordinates never match."""
        if not center.is_valid():
            return []
        return find_within_radius(center, await self.fetch_all(), radius_m)

    async def fetch_by_name(self, name: str) -> Record | None:
        """First row whose name equals ``name`` exactly, or None."""
        if not name or not name.strip():
            return None
        data = await self._get_page(1, {"filter__name__equal": name.strip()})
        if not data["results"]:
            return None
        return row_to_record(data["results"][0])

    async def find_existing(
        self,
        record: Record,
        radius_m: float = EXISTING_MATCH_RADIUS_M,
    ) -> Record | None:
        """A stored record within radius_m with the same normalized name, or None."""
        if not record.has_valid_coordinates:
            return None
        target = normalize_name(record.name)
        if not target:
            return None
        for candidate in await self.fetch_near(record.coordinates, radius_m):
            if normalize_name(candidate.name) == target:
                return candidate
        return None

    # -- writes --------------------------------------------------------------

    async def create(self, record: Record) -> Record:
        if not record.has_valid_coordinates:
            raise ValidationError(
                f"Invalid coordinates for {record.name!r}: {record.coordinates}", source=SOURCE
            )
        response = await send(
            self._client, "POST", self._rows_url(), source=SOURCE,
            params={"user_field_names": "true"}, headers=self._headers,
            json=record_to_row(record),
        )
        created = row_to_record(json_body(response, SOURCE))
        logger.info("Created %s (%s)", created.id, created.name)
        return created

    async def update(self, record_id: str | int, patch: dict[str, Any]) -> Record:
        """
        Patch a row with record attributes.

        Only the given attributes are sent; an empty image_url is dropped so
        an existing image is never cleared.
        """
        row_id = self._row_id(record_id)
        row = patch_to_row(patch)
        if not row.get("image_url"):
            row.pop("image_url", None)
        try:
            response = await send(
                self._client, "PATCH", self._rows_url(row_id), source=SOURCE,
                params={"user_field_names": "true"}, headers=self._headers, json=row,
            )
        except TransientIOError as e:
            if e.upstream_status == 404:
                raise NotFoundError(f"Store row {row_id} not found", source=SOURCE) from e
            raise
        return row_to_record(json_body(response, SOURCE))

    async def delete(self, record_id: str | int) -> None:
        row_id = self._row_id(record_id)
        try:
            await send(
                self._client, "DELETE", self._rows_url(row_id), source=SOURCE,
                headers=self._headers,
            )
        except TransientIOError as e:
            if e.upstream_status == 404:
                raise NotFoundError(f"Store row {row_id} not found", source=SOURCE) from e
            raise

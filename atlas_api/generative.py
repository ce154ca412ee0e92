"""
Landmark Atlas — Generative Lookup Client

Proposes candidate landmarks for a place through the Gemini generateContent
REST API, grounded with Google Search and Maps.  The model is asked for a
bare JSON array; anything around the outermost brackets is discarded and an
unparseable answer yields no candidates.

Quota and overload responses (HTTP 429/503, RESOURCE_EXHAUSTED, UNAVAILABLE,
"model is overloaded") raise RateLimitError so the orchestrator can fall back
to stored results.

Candidates come back with provenance "generative", ids that never collide
with store ids, and a canonical Maps URL built from the grounding place id
when one matches the candidate's name.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from typing import Any
from urllib.parse import quote

import httpx

from atlas_dedup.algorithms.geo_proximity import Coordinate
from atlas_dedup.records import Provenance, Record

from . import settings
from .errors import RateLimitError, TransientIOError
from .helpers import json_body, looks_rate_limited, send

logger = logging.getLogger(__name__)

SOURCE = "generative"

SYSTEM_INSTRUCTION = """\
You are the curator of a map of remarkable landmark buildings.
Identify only large, architecturally significant structures: monumental
civic buildings, historic towers, notable Art Deco, Brutalist, Gothic Revival
and Socialist Classicism works.  Prefer a few exceptional landmarks over many
ordinary ones; most places have between zero and three.

Return ONLY a JSON array, no markdown and no commentary.  Each object has:
  "name" (string), "location" (string, full address), "city" (string),
  "country" (string), "description" (string, one or two sentences),
  "style" (string, architectural style), "architect" (string, optional),
  "isPrioritized" (boolean, true for historically significant Art Deco works
  by well-known architects), "lat" (number), "lng" (number).
"""

_PLACE_ID_IN_URL = re.compile(r"(?:place_id=|place/)([^&/?]+)")


def extract_json_array(text: str | None) -> list[Any]:
    """Parse the outermost [...] of a model answer; [] when absent or invalid."""
    if not text:
        return []
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or start >= end:
        return []
    try:
        parsed = json.loads(text[start : end + 1])
    except ValueError:
        logger.warning("Generative answer is not valid JSON: %.200s", text)
        return []
    return parsed if isinstance(parsed, list) else []


def maps_search_url(name: str, place_id: str | None = None, query: str | None = None) -> str:
    """Canonical Google Maps search link, pinned to a place id when known."""
    if place_id:
        return (
            "https://www.google.com/maps/search/?api=1"
            f"&query={quote(name)}&query_place_id={quote(place_id)}"
        )
    return f"https://www.google.com/maps/search/?api=1&query={quote(query or name)}"


def _grounding_place(name: str, chunks: list[dict[str, Any]]) -> tuple[str | None, str | None]:
    """(place_id, uri) of the first Maps grounding chunk whose title matches the name."""
    lowered = name.lower()
    for chunk in chunks:
        maps = chunk.get("maps") if isinstance(chunk, dict) else None
        if not isinstance(maps, dict):
            continue
        title = (_text(maps.get("title")) or "").lower()
        if not title or not (title in lowered or lowered in title):
            continue
        uri = _text(maps.get("uri"))
        place_id = _text(maps.get("placeId")) or _text(maps.get("place_id"))
        if not place_id and uri:
            m = _PLACE_ID_IN_URL.search(uri)
            if m:
                place_id = m.group(1)
        if place_id:
            place_id = place_id.removeprefix("places/").strip()
        return place_id or None, uri
    return None, None


def _text(value: Any) -> str | None:
    """Model output is untrusted: numbers become strings, containers are dropped."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    return str(value).strip() or None


def item_to_record(item: dict[str, Any], query: str, chunks: list[dict[str, Any]] | None = None) -> Record | None:
    """Convert one model-proposed object into a generative Record."""
    name = _text(item.get("name"))
    if not name:
        return None
    city = _text(item.get("city"))
    country = _text(item.get("country"))
    location = _text(item.get("location"))

    place_id, _ = _grounding_place(name, chunks or [])
    search_query = location or ", ".join(p for p in (name, city, country) if p)

    return Record(
        id=f"gen-{uuid.uuid4().hex[:12]}",
        name=name,
        coordinates=Coordinate.parse(item.get("lat"), item.get("lng")),
        location_text=location or query,
        city=city,
        country=country,
        category=_text(item.get("style")),
        description=_text(item.get("description")),
        attribution_name=_text(item.get("architect")),
        external_ref=place_id,
        canonical_map_url=maps_search_url(name, place_id, search_query),
        provenance=Provenance.GENERATIVE,
        prioritized=item.get("isPrioritized") is True,
        source_metadata={"query": query},
    )


class GenerativeLookup:
    """Candidate landmarks from the Gemini API."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls) -> "GenerativeLookup":
        return cls(
            settings.GEMINI_CONFIG["api_key"],
            model=settings.GEMINI_CONFIG["model"],
            base_url=settings.GEMINI_CONFIG["base_url"],
            timeout=max(settings.HTTP_TIMEOUT, 60.0),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _payload(self, text: str, anchor: Coordinate | None) -> dict[str, Any]:
        prompt = (
            f"Find landmark buildings in or near {text}. "
            "Give their exact coordinates and separate city and country fields."
        )
        payload: dict[str, Any] = {
            "systemInstruction": {"parts": [{"text": SYSTEM_INSTRUCTION}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [{"googleMaps": {}}, {"googleSearch": {}}],
        }
        if anchor is not None and anchor.is_valid():
            payload["toolConfig"] = {
                "retrievalConfig": {
                    "latLng": {"latitude": anchor.lat, "longitude": anchor.lng},
                }
            }
        return payload

    async def query(self, text: str, anchor: Coordinate | None = None) -> list[Record]:
        """
        Ask the model for landmarks near a place.

        Raises RateLimitError on quota / overload, TransientIOError on any
        other failure.  Distance filtering is left to the caller.
        """
        if not self.api_key:
            raise TransientIOError("Generative lookup API key is not configured", source=SOURCE)

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            response = await send(
                self._client, "POST", url, source=SOURCE,
                params={"key": self.api_key}, json=self._payload(text, anchor),
            )
        except TransientIOError as e:
            if looks_rate_limited(e.message):
                raise RateLimitError(e.message, source=SOURCE) from e
            raise

        data = json_body(response, SOURCE)
        try:
            candidates = data.get("candidates") or []
            if not candidates:
                feedback = data.get("promptFeedback") or {}
                logger.warning("Generative lookup returned no candidates: %s", feedback)
                return []

            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts") or []
            answer = "".join(p.get("text") or "" for p in parts if isinstance(p, dict))
            chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
        except (AttributeError, TypeError) as e:
            raise TransientIOError(f"Unexpected generative response shape: {e}", source=SOURCE) from e

        records = []
        for item in extract_json_array(answer):
            if not isinstance(item, dict):
                continue
            try:
                record = item_to_record(item, text, chunks)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed generative item %.200r: %s", item, e)
                continue
            if record is not None:
                records.append(record)
        logger.info("Generative lookup for %r proposed %d landmarks", text, len(records))
        return records

"""
Landmark Atlas — Search Orchestrator

Decides when to consult each source and produces a narrated result:

    1. stored landmarks near the anchor (SpatialCache)
    2. fewer than the trigger (5)?  ask the generative lookup, dropping any
       proposal more than the acceptance radius (50 km) from the anchor
    3. merge both with the incremental dedup engine
    4. enrich up to 20 records that have a place id but no image
    5. prioritized records first, otherwise original order
    6. narrative summarizing what came from where

Side effects that must not delay the answer run as background tasks:
persisting net-new generative landmarks (after an existence check) and
writing enriched images back to stored rows.  Their failures are logged
per record and never reach the caller.

A generative rate limit is not an error for the caller: the stored results
come back with ``rate_limited`` set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Coroutine

from atlas_dedup.algorithms.geo_proximity import Coordinate, find_within_radius
from atlas_dedup.algorithms.match_policies import MatchingConfig
from atlas_dedup.engine import merge
from atlas_dedup.records import Provenance, Record, filled_fields

from .errors import AtlasError, NotFoundError, RateLimitError, TransientIOError, ValidationError
from .spatial_cache import SpatialCache

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    records: list[Record]
    narrative: str
    store_count: int
    new_count: int = 0
    expanded: bool = False
    rate_limited: bool = False
    generative_failed: bool = False
    anchor: Coordinate | None = None
    radius_m: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "narrative": self.narrative,
            "store_count": self.store_count,
            "new_count": self.new_count,
            "expanded": self.expanded,
            "rate_limited": self.rate_limited,
            "generative_failed": self.generative_failed,
            "anchor": self.anchor.to_dict() if self.anchor is not None else None,
            "radius_m": self.radius_m,
            "count": len(self.records),
            "records": [r.to_dict() for r in self.records],
        }


def build_narrative(
    store_count: int,
    trigger: int,
    *,
    new_count: int = 0,
    rate_limited: bool = False,
    generative_failed: bool = False,
) -> str:
    """Operator-readable summary of where a search's results came from."""
    if store_count >= trigger:
        return f"{store_count} landmarks found in database"
    text = f"Only {store_count} landmarks found in database, expanding search"
    if rate_limited:
        return text + ". Discovery quota reached, showing saved landmarks only"
    if generative_failed:
        return text + ". Discovery lookup unavailable, showing saved landmarks only"
    if new_count > 0:
        return text + f". {new_count} new landmarks found and added to database"
    return text + ". No other qualifying landmarks found in this area"


def prioritized_first(records: list[Record]) -> list[Record]:
    # sorted() is stable, so relative order is kept within each class
    return sorted(records, key=lambda r: not r.prioritized)


class SearchOrchestrator:
    def __init__(
        self,
        cache: SpatialCache,
        generative: Any,
        places: Any,
        store: Any,
        config: MatchingConfig | None = None,
        geocoder: Any = None,
    ):
        self.cache = cache
        self.generative = generative
        self.places = places
        self.store = store
        self.config = config if config is not None else cache.config
        self.geocoder = geocoder
        self.latest: SearchResult | None = None
        self._tasks: set[asyncio.Task] = set()

    # -- background work -----------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every background task, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def _persist_one(self, record: Record) -> str:
        try:
            existing = await self.store.find_existing(record)
            if existing is not None:
                logger.info("Skipped saving %r, already stored as %s", record.name, existing.id)
                return "skipped"
            created = await self.store.create(record)
        except Exception as e:
            logger.warning("Failed to save %r to the store: %s", record.name, e)
            return "failed"
        self.cache.fold_in([created])
        logger.info("Saved %r to the store as %s", record.name, created.id)
        return "saved"

    async def _persist_new(self, records: list[Record]) -> None:
        outcomes = await asyncio.gather(*(self._persist_one(r) for r in records))
        logger.info(
            "Store save summary: %d saved, %d skipped, %d failed",
            outcomes.count("saved"), outcomes.count("skipped"), outcomes.count("failed"),
        )

    async def _write_back(self, record: Record, patch: dict[str, Any]) -> None:
        try:
            await self.store.update(record.id, patch)
        except Exception as e:
            logger.warning("Failed to write enrichment back for %s (%s): %s", record.id, record.name, e)

    # -- enrichment ----------------------------------------------------------

    async def _enrich(self, records: list[Record]) -> list[Record]:
        if self.places is None:
            return records
        limit = int(self.config.search["enrichment_batch_size"])
        enriched = await self.places.enrich_batch(records, limit)

        updated_stored = []
        for before, after in zip(records, enriched):
            if after is before or not after.is_store_backed:
                continue
            patch = filled_fields(before, after)
            if patch:
                updated_stored.append(after)
                self._spawn(self._write_back(after, patch))
        if updated_stored:
            self.cache.replace(updated_stored)
        return enriched

    # -- operations ----------------------------------------------------------

    async def search(
        self,
        anchor: Coordinate,
        radius_m: float | None = None,
        query: str | None = None,
    ) -> SearchResult:
        if not anchor.is_valid():
            raise ValidationError(f"Invalid anchor coordinates: {anchor}")
        search_cfg = self.config.search
        radius = float(radius_m) if radius_m else float(search_cfg["default_radius_m"])
        trigger = int(search_cfg["generative_trigger"])

        stored = await self.cache.near(anchor, radius)
        store_count = len(stored)

        accepted: list[Record] = []
        expanded = rate_limited = generative_failed = False
        if store_count < trigger:
            expanded = True
            if self.generative is None:
                generative_failed = True
            else:
                text = query or f"{anchor.lat:.5f}, {anchor.lng:.5f}"
                try:
                    proposed = await self.generative.query(text, anchor)
                except RateLimitError as e:
                    logger.warning("Generative lookup rate limited: %s", e)
                    rate_limited = True
                except AtlasError as e:
                    logger.warning("Generative lookup failed: %s", e)
                    generative_failed = True
                else:
                    accepted = find_within_radius(
                        anchor, proposed, float(search_cfg["acceptance_radius_m"])
                    )
                    if len(accepted) < len(proposed):
                        logger.info(
                            "Rejected %d generative landmarks outside the acceptance radius",
                            len(proposed) - len(accepted),
                        )

        merged = self.cache.blacklist.filter(merge(stored, accepted, self.config))
        new_count = max(0, len(merged) - store_count)

        merged = await self._enrich(merged)
        records = prioritized_first(merged)

        net_new = [
            r for r in records
            if r.provenance == Provenance.GENERATIVE and not r.is_store_backed
        ]
        if net_new:
            self._spawn(self._persist_new(net_new))

        result = SearchResult(
            records=records,
            narrative=build_narrative(
                store_count,
                trigger,
                new_count=new_count,
                rate_limited=rate_limited,
                generative_failed=generative_failed,
            ),
            store_count=store_count,
            new_count=new_count,
            expanded=expanded,
            rate_limited=rate_limited,
            generative_failed=generative_failed,
            anchor=anchor,
            radius_m=radius,
        )
        # Overlapping searches are not cancelled; the last to finish wins
        self.latest = result
        logger.info("Search at (%.4f, %.4f): %s", anchor.lat, anchor.lng, result.narrative)
        return result

    async def search_text(self, query: str, radius_m: float | None = None) -> SearchResult:
        """Geocode free text, then search around it."""
        if self.geocoder is None:
            raise TransientIOError("Geocoding is not configured", source="geocoding")
        anchor = await self.geocoder.resolve(query)
        if anchor is None:
            raise NotFoundError(f"Could not find location: {query}")
        return await self.search(anchor, radius_m, query=query)

    async def find_nearest(self, location: Coordinate) -> Record:
        """Closest stored landmark within the nearest-search radius."""
        if not location.is_valid():
            raise ValidationError(f"Invalid coordinates: {location}")
        record = await self.cache.nearest(location, float(self.config.search["nearest_radius_m"]))
        if record is None:
            raise NotFoundError("No landmarks found near this location")
        return record

    async def lookup_by_name(self, name: str) -> Record:
        record = await self.store.fetch_by_name(name)
        if record is None or record in self.cache.blacklist:
            raise NotFoundError(f"No landmark named {name!r}")
        return record

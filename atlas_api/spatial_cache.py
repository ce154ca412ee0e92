"""
Landmark Atlas — Spatial Cache

In-memory, radius-queryable mirror of the persistent store.

Read policy (cache first, regional fetch on an empty region):
    1. serve the query from the snapshot
    2. if the snapshot is empty, or has nothing in that region, fetch the
       region from the store and fold it into the snapshot with an
       incremental merge

The blacklist is applied on every path: at load, on fallback fetches, on
fold-ins and on demand after a reconciliation run.

Every mutation builds a new tuple and swaps it in; readers holding the old
snapshot are never affected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from atlas_dedup.algorithms.geo_proximity import Coordinate, find_within_radius, haversine_m
from atlas_dedup.algorithms.match_policies import MatchingConfig
from atlas_dedup.blacklist import Blacklist
from atlas_dedup.engine import merge
from atlas_dedup.records import Record

from .errors import AtlasError

logger = logging.getLogger(__name__)


class SpatialCache:
    def __init__(
        self,
        store: Any,
        blacklist: Blacklist | None = None,
        config: MatchingConfig | None = None,
    ):
        self.store = store
        self.blacklist = blacklist if blacklist is not None else Blacklist()
        self.config = config if config is not None else MatchingConfig()
        self._records: tuple[Record, ...] = ()
        self._loaded = False
        self._load_lock = asyncio.Lock()

    # -- state ---------------------------------------------------------------

    @property
    def snapshot(self) -> list[Record]:
        return list(self._records)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def __len__(self) -> int:
        return len(self._records)

    async def load(self, force: bool = False) -> int:
        """One-time paginated load of the whole store. Returns the snapshot size."""
        async with self._load_lock:
            if self._loaded and not force:
                return len(self._records)
            records = await self.store.fetch_all()
            kept = self.blacklist.filter(records)
            self._records = tuple(kept)
            self._loaded = True
            logger.info(
                "Spatial cache loaded %d records (%d blacklisted skipped)",
                len(kept), len(records) - len(kept),
            )
            return len(self._records)

    # -- mutation ------------------------------------------------------------

    def fold_in(self, records: Iterable[Record]) -> None:
        """Merge fresh records into the snapshot (interactive policy)."""
        incoming = self.blacklist.filter(records)
        if not incoming:
            return
        self._records = tuple(merge(self._records, incoming, self.config))

    def replace(self, records: Iterable[Record]) -> int:
        """Swap in updated versions of records already in the snapshot, matched by id."""
        updates = {r.id: r for r in records}
        if not updates:
            return 0
        replaced = 0
        out = []
        for record in self._records:
            if record.id in updates:
                out.append(updates[record.id])
                replaced += 1
            else:
                out.append(record)
        self._records = tuple(out)
        return replaced

    def upsert(self, record: Record) -> None:
        """Put a record written by hand into the snapshot as-is, without matching."""
        if self.blacklist.is_blacklisted(record):
            return
        if not self.replace([record]):
            self._records = self._records + (record,)

    def apply_blacklist(self) -> int:
        """Evict newly blacklisted ids. Returns how many were removed."""
        kept = self.blacklist.filter(self._records)
        removed = len(self._records) - len(kept)
        if removed:
            self._records = tuple(kept)
            logger.info("Evicted %d blacklisted records from the spatial cache", removed)
        return removed

    # -- queries -------------------------------------------------------------

    def _in_snapshot(self, center: Coordinate, radius_m: float) -> list[Record]:
        return self.blacklist.filter(find_within_radius(center, self._records, radius_m))

    async def _fetch_region(self, center: Coordinate, radius_m: float) -> list[Record]:
        try:
            fetched = await self.store.fetch_near(center, radius_m)
        except AtlasError as e:
            logger.warning("Regional store fetch failed around %s: %s", center, e)
            return []
        fetched = self.blacklist.filter(
            find_within_radius(center, fetched, radius_m)
        )
        self.fold_in(fetched)
        return fetched

    async def near(self, center: Coordinate, radius_m: float) -> list[Record]:
        """
        Records within radius_m (inclusive) of center.

        Invalid coordinates never match; an invalid center matches nothing.
        """
        if not center.is_valid():
            return []
        hits = self._in_snapshot(center, radius_m)
        if hits:
            return hits
        logger.info(
            "No cached records within %.0f m of (%.4f, %.4f), fetching region from store",
            radius_m, center.lat, center.lng,
        )
        return await self._fetch_region(center, radius_m)

    async def nearest(self, center: Coordinate, max_radius_m: float) -> Record | None:
        """Closest record within max_radius_m, or None."""
        candidates = await self.near(center, max_radius_m)
        if not candidates:
            return None
        return min(candidates, key=lambda r: haversine_m(center, r.coordinates))

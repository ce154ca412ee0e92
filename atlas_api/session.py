"""
Landmark Atlas — Service Session

The explicit object that owns every long-lived piece of state: matching
config, blacklist, collaborator clients, spatial cache, orchestrator and
curator.  Store writes (batch reconcile and manual edits) run one at a time.
Built once at startup and stored on ``app.state.session``.

Usage:
    session = AtlasSession.from_settings()
    await session.start()
    result = await session.orchestrator.search(anchor)
    await session.close()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from atlas_dedup.algorithms.match_policies import MatchingConfig
from atlas_dedup.blacklist import Blacklist
from atlas_dedup.engine import ReconcileResult, reconcile
from atlas_dedup.records import Record

from . import settings
from .curation import LandmarkCurator
from .errors import AtlasError
from .generative import GenerativeLookup
from .geocoding import Geocoder
from .orchestrator import SearchOrchestrator
from .places import PlacesEnricher
from .spatial_cache import SpatialCache
from .store import RowStore

logger = logging.getLogger(__name__)


@dataclass
class AtlasSession:
    config: MatchingConfig
    blacklist: Blacklist
    store: Any
    generative: Any
    places: Any
    geocoder: Any
    cache: SpatialCache
    orchestrator: SearchOrchestrator
    curator: LandmarkCurator
    _write_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def build(
        cls,
        *,
        store: Any,
        blacklist: Blacklist,
        config: MatchingConfig | None = None,
        generative: Any = None,
        places: Any = None,
        geocoder: Any = None,
    ) -> "AtlasSession":
        config = config if config is not None else MatchingConfig()
        cache = SpatialCache(store, blacklist, config)
        orchestrator = SearchOrchestrator(cache, generative, places, store, config, geocoder)
        return cls(
            config=config,
            blacklist=blacklist,
            store=store,
            generative=generative,
            places=places,
            geocoder=geocoder,
            cache=cache,
            orchestrator=orchestrator,
            curator=LandmarkCurator(store, cache, blacklist, geocoder),
        )

    @classmethod
    def from_settings(cls) -> "AtlasSession":
        config = MatchingConfig.from_yaml(settings.MATCHING_RULES_PATH)
        return cls.build(
            store=RowStore.from_settings(page_size=int(config.maintenance["page_size"])),
            blacklist=Blacklist.load(settings.BLACKLIST_PATH),
            config=config,
            generative=GenerativeLookup.from_settings() if settings.GEMINI_CONFIG["api_key"] else None,
            places=PlacesEnricher.from_settings() if settings.PLACES_CONFIG["api_key"] else None,
            geocoder=Geocoder.from_settings(),
        )

    async def start(self) -> None:
        """Load the spatial cache; a store outage leaves it empty (regional fetches still work)."""
        try:
            await self.cache.load()
        except AtlasError as e:
            logger.warning("Initial store load failed, starting with an empty cache: %s", e)

    async def close(self) -> None:
        await self.orchestrator.drain()
        for client in (self.store, self.generative, self.places, self.geocoder):
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()

    async def run_reconcile(self, *, dry_run: bool = False, delay: float | None = None) -> ReconcileResult:
        """Batch-reconcile the whole store, then evict deleted ids from the cache."""
        async with self._write_lock:
            records = await self.store.fetch_all()
            result = await reconcile(
                records, self.store, self.blacklist, self.config,
                dry_run=dry_run, delay=delay,
            )
            if not dry_run:
                self.cache.apply_blacklist()
                self.cache.replace(result.kept)
            return result

    # -- manual curation -----------------------------------------------------

    async def create_landmark(self, draft: Record, actor_id: str = "anonymous") -> Record:
        async with self._write_lock:
            return await self.curator.create(draft, actor_id)

    async def update_landmark(self, record_id: str, patch: dict[str, Any], actor_id: str = "anonymous") -> Record:
        async with self._write_lock:
            return await self.curator.update(record_id, patch, actor_id)

    async def remove_landmark(
        self, record_id: str, *, keep_row: bool = False, actor_id: str = "anonymous"
    ) -> dict[str, Any]:
        async with self._write_lock:
            return await self.curator.remove(record_id, keep_row=keep_row, actor_id=actor_id)

"""Shared fixtures: record factory and in-memory collaborators."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import httpx
import pytest

from atlas_dedup.algorithms.geo_proximity import Coordinate, find_within_radius
from atlas_dedup.algorithms.match_policies import MatchingConfig
from atlas_dedup.algorithms.name_similarity import normalize_name
from atlas_dedup.blacklist import Blacklist
from atlas_dedup.records import Provenance, Record, store_record_id
from atlas_api.errors import NotFoundError, TransientIOError
from atlas_api.places import PlacesEnricher


# Warsaw, Palace of Culture and Science
WARSAW = Coordinate(52.2318, 21.0060)


def make_record(
    id: str = "store-1",
    name: str = "Palace of Culture",
    lat: float = WARSAW.lat,
    lng: float = WARSAW.lng,
    **fields: Any,
) -> Record:
    return Record(id=id, name=name, coordinates=Coordinate(lat, lng), **fields)


def offset_north(coord: Coordinate, metres: float) -> Coordinate:
    """A point ``metres`` due north of coord (111 195 m per degree of latitude)."""
    return Coordinate(coord.lat + metres / 111_195.0, coord.lng)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeStore:
    """In-memory stand-in for RowStore."""

    def __init__(
        self,
        records: list[Record] = (),
        *,
        fail_delete: set[str] = frozenset(),
        fail_update: set[str] = frozenset(),
        fail_create: bool = False,
    ):
        self.records: dict[str, Record] = {r.id: r for r in records}
        self.fail_delete = set(fail_delete)
        self.fail_update = set(fail_update)
        self.fail_create = fail_create
        self.fetch_all_calls = 0
        self.fetch_near_calls: list[tuple[Coordinate, float]] = []
        self.created: list[Record] = []
        self.updated: list[tuple[str, dict[str, Any]]] = []
        self.deleted: list[str] = []
        self._next_row_id = 1000

    async def fetch_all(self, page: int | None = None) -> list[Record]:
        self.fetch_all_calls += 1
        return list(self.records.values())

    async def fetch_near(self, center: Coordinate, radius_m: float) -> list[Record]:
        self.fetch_near_calls.append((center, radius_m))
        return find_within_radius(center, list(self.records.values()), radius_m)

    async def fetch_by_name(self, name: str) -> Record | None:
        return next((r for r in self.records.values() if r.name == name), None)

    async def find_existing(self, record: Record, radius_m: float = 1_000.0) -> Record | None:
        target = normalize_name(record.name)
        for candidate in find_within_radius(record.coordinates, list(self.records.values()), radius_m):
            if normalize_name(candidate.name) == target:
                return candidate
        return None

    async def create(self, record: Record) -> Record:
        if self.fail_create:
            raise TransientIOError("store error: 500", source="store")
        self._next_row_id += 1
        created = replace(record, id=store_record_id(self._next_row_id), provenance=Provenance.PERSISTENT)
        self.records[created.id] = created
        self.created.append(created)
        return created

    async def update(self, record_id: str, patch: dict[str, Any]) -> Record:
        if record_id in self.fail_update:
            raise TransientIOError("store error: 500", source="store")
        if record_id not in self.records:
            raise NotFoundError(f"{record_id} not found", source="store")
        self.updated.append((record_id, dict(patch)))
        self.records[record_id] = replace(self.records[record_id], **patch)
        return self.records[record_id]

    async def delete(self, record_id: str) -> None:
        if record_id in self.fail_delete:
            raise TransientIOError("store error: 500", source="store")
        if record_id not in self.records:
            raise NotFoundError(f"{record_id} not found", source="store")
        del self.records[record_id]
        self.deleted.append(record_id)


class FakeGenerative:
    """Returns canned candidates, or raises the configured error."""

    def __init__(self, records: list[Record] = (), error: Exception | None = None):
        self.records = list(records)
        self.error = error
        self.calls: list[tuple[str, Coordinate | None]] = []

    async def query(self, text: str, anchor: Coordinate | None = None) -> list[Record]:
        self.calls.append((text, anchor))
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakePlaces(PlacesEnricher):
    """PlacesEnricher whose details come from a dict instead of HTTP."""

    def __init__(self, details: dict[str, dict[str, str]] | None = None):
        super().__init__("test-key", client=httpx.AsyncClient())
        self.details = details or {}
        self.calls: list[str] = []

    async def details_for(self, external_ref: str) -> dict[str, str]:
        self.calls.append(external_ref)
        if external_ref not in self.details:
            raise NotFoundError(f"Place {external_ref} not found", source="places")
        return dict(self.details[external_ref])


class FakeGeocoder:
    def __init__(self, places: dict[str, Coordinate] | None = None, label: str | None = None, error=None):
        self.places = places or {}
        self.label = label
        self.error = error
        self.reverse_calls: list[Coordinate] = []

    async def resolve(self, text: str) -> Coordinate | None:
        return self.places.get(text.lower())

    async def reverse(self, coord: Coordinate) -> str | None:
        self.reverse_calls.append(coord)
        if self.error is not None:
            raise self.error
        return self.label


class RecordingSleep:
    """Drop-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> MatchingConfig:
    return MatchingConfig()


@pytest.fixture()
def blacklist(tmp_path) -> Blacklist:
    return Blacklist(tmp_path / "blacklist.json")


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()

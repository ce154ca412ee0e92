"""
Landmark Atlas — Record Model

The point-of-interest record shared by every component, and the explicit
field-by-field overlay used whenever two records describing the same
landmark are reconciled.

Overlay precedence (base = the higher-scored record):

    id, provenance       always the base's
    coordinates          base's if valid, else the other's if valid
    text fields          base's if non-blank, else the other's
    prioritized          true if either is true
    source_metadata      union, base keys win

Fields already present on the base are never overwritten.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields, replace
from typing import Any

from .algorithms.geo_proximity import Coordinate

STORE_ID_PREFIX = "store-"

# Text fields filled from the other record when blank on the base
OVERLAY_TEXT_FIELDS: tuple[str, ...] = (
    "name",
    "location_text",
    "city",
    "country",
    "category",
    "description",
    "attribution_name",
    "external_ref",
    "image_url",
    "canonical_map_url",
)

# snake_case attribute → camelCase JSON key
_JSON_KEYS: dict[str, str] = {
    "id": "id",
    "name": "name",
    "location_text": "locationText",
    "city": "city",
    "country": "country",
    "category": "category",
    "description": "description",
    "attribution_name": "attributionName",
    "external_ref": "externalRef",
    "image_url": "imageUrl",
    "canonical_map_url": "canonicalMapUrl",
}


class Provenance(str, enum.Enum):
    PERSISTENT = "persistent"
    GENERATIVE = "generative"
    MANUAL = "manual"


@dataclass
class Record:
    """A point of interest from the store, the generative lookup, or manual entry."""

    id: str
    name: str
    coordinates: Coordinate = field(default_factory=lambda: Coordinate(0.0, 0.0))
    location_text: str | None = None
    city: str | None = None
    country: str | None = None
    category: str | None = None
    description: str | None = None
    attribution_name: str | None = None
    external_ref: str | None = None
    image_url: str | None = None
    canonical_map_url: str | None = None
    provenance: Provenance = Provenance.PERSISTENT
    prioritized: bool = False
    source_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def has_valid_coordinates(self) -> bool:
        return self.coordinates is not None and self.coordinates.is_valid()

    @property
    def is_store_backed(self) -> bool:
        return store_row_id(self.id) is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {key: getattr(self, attr) for attr, key in _JSON_KEYS.items()}
        out["coordinates"] = self.coordinates.to_dict()
        out["provenance"] = self.provenance.value
        out["prioritized"] = self.prioritized
        out["sourceMetadata"] = dict(self.source_metadata)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        coords = data.get("coordinates") or {}
        kwargs: dict[str, Any] = {
            attr: data.get(key) for attr, key in _JSON_KEYS.items() if key in data
        }
        kwargs.setdefault("name", "")
        return cls(
            coordinates=Coordinate.parse(coords.get("lat"), coords.get("lng")),
            provenance=Provenance(data.get("provenance", Provenance.PERSISTENT.value)),
            prioritized=bool(data.get("prioritized", False)),
            source_metadata=dict(data.get("sourceMetadata") or {}),
            **kwargs,
        )


# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------


def store_record_id(row_id: int) -> str:
    """Embed a store row identifier in a record id."""
    return f"{STORE_ID_PREFIX}{int(row_id)}"


def store_row_id(record_id: str | int | None) -> int | None:
    """
    Extract the numeric store row id from a record id.

    Accepts "store-123" or a bare integer.  Returns None for ids that did
    not originate in the store (generative or manual drafts).
    """
    if record_id is None:
        return None
    if isinstance(record_id, int):
        return record_id
    if record_id.startswith(STORE_ID_PREFIX):
        suffix = record_id[len(STORE_ID_PREFIX):]
        if suffix.isdigit():
            return int(suffix)
    return None


# ---------------------------------------------------------------------------
# Overlay
# ---------------------------------------------------------------------------


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def overlay(base: Record, other: Record) -> Record:
    """
    Return a copy of base with its empty fields filled from other.

    Neither input is mutated.  See the module docstring for the precedence
    table.
    """
    updates: dict[str, Any] = {}

    for name in OVERLAY_TEXT_FIELDS:
        if is_blank(getattr(base, name)) and not is_blank(getattr(other, name)):
            updates[name] = getattr(other, name)

    if not base.has_valid_coordinates and other.has_valid_coordinates:
        updates["coordinates"] = other.coordinates

    if other.prioritized and not base.prioritized:
        updates["prioritized"] = True

    if other.source_metadata:
        merged_meta = {**other.source_metadata, **base.source_metadata}
        if merged_meta != base.source_metadata:
            updates["source_metadata"] = merged_meta

    if not updates:
        return base
    return replace(base, **updates)


def filled_fields(before: Record, after: Record) -> dict[str, Any]:
    """
    The fields that differ between two versions of the same record.

    Used to build a store patch after an overlay enriched a survivor.
    """
    patch: dict[str, Any] = {}
    for f in fields(Record):
        if f.name == "id":
            continue
        old = getattr(before, f.name)
        new = getattr(after, f.name)
        if old != new:
            patch[f.name] = new
    return patch

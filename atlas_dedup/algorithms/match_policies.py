#!/usr/bin/env python3
"""
Landmark Atlas — Match Policies

Two deliberately separate rules decide whether two records describe the same
landmark:

    interactive   live search merges: close names, close together
                  (name_similarity >= 0.6 and distance < 500 m)
    batch         whole-store maintenance: same base name within a city-sized
                  radius (distance < 10 km and base names equal, or one
                  contains the other with overlap >= 0.6)

The batch rule is looser on distance and stricter on names, so it must never
be used for a live merge and vice versa.

Both rules refuse records with invalid coordinates.  The batch rule also
refuses any pair touching an exception group: a cluster of genuinely distinct
sibling landmarks that share name fragments and a city.

Every threshold is loaded from matching_rules.yaml; the values below are only
the defaults used when a key is missing.

Dependencies:
    pip install pyyaml
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .geo_proximity import haversine_m
from .name_similarity import (
    DEFAULT_MIN_TOKEN_LENGTH,
    DEFAULT_QUALIFIER_WEIGHT,
    base_name,
    base_name_overlap,
    name_similarity,
    normalize_name,
)

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).resolve().parent.parent / "config" / "matching_rules.yaml"


# ---------------------------------------------------------------------------
# Defaults (overridden by matching_rules.yaml at runtime)
# ---------------------------------------------------------------------------

_DEFAULT_INTERACTIVE = {
    "min_name_similarity": 0.6,
    "max_distance_m": 500.0,
}

_DEFAULT_BATCH = {
    "max_distance_m": 10_000.0,
    "min_base_overlap": 0.6,
    "min_base_name_length": 5,
    "review_threshold": 0.8,
}

_DEFAULT_NAMES = {
    "min_token_length": DEFAULT_MIN_TOKEN_LENGTH,
    "qualifier_weight": DEFAULT_QUALIFIER_WEIGHT,
}

_DEFAULT_SCORING = {
    "external_ref": 10.0,
    "image_url": 5.0,
    "canonical_map_url": 2.0,
    "description": 1.0,
    "city": 0.5,
    "country": 0.5,
    "location_text": 0.5,
}

_DEFAULT_SEARCH = {
    "default_radius_m": 50_000.0,
    "generative_trigger": 5,
    "acceptance_radius_m": 50_000.0,
    "enrichment_batch_size": 20,
    "nearest_radius_m": 2_000_000.0,
    "existing_match_radius_m": 1_000.0,
}

_DEFAULT_MAINTENANCE = {
    "delete_delay_s": 0.3,
    "page_size": 200,
}


# ---------------------------------------------------------------------------
# Exception groups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExceptionGroup:
    """
    A named set of sibling landmarks that must never be batch-merged.

    A record belongs to the group when its country contains one of the
    country aliases (or the group lists none), its city contains one of the
    city aliases (or the group lists none), and its normalized name contains
    at least one keyword.  Alias matching is by substring, so "Russian
    Federation" and "Moscow, Russia" still count.
    """

    name: str
    countries: frozenset[str] = frozenset()
    cities: frozenset[str] = frozenset()
    keywords: tuple[str, ...] = ()

    def contains(self, record: Any) -> bool:
        if self.countries and not _mentions(record.country, self.countries):
            return False
        if self.cities and not _mentions(record.city, self.cities):
            return False
        name = normalize_name(record.name)
        return any(kw in name for kw in self.keywords)

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> "ExceptionGroup":
        return cls(
            name=name,
            countries=frozenset(_lower(c) for c in raw.get("countries", []) or []),
            cities=frozenset(_lower(c) for c in raw.get("cities", []) or []),
            keywords=tuple(normalize_name(k) for k in raw.get("keywords", []) or []),
        )


def _lower(value: str | None) -> str:
    return (value or "").strip().lower()


def _mentions(value: str | None, aliases: frozenset[str]) -> bool:
    text = _lower(value)
    return bool(text) and any(alias in text for alias in aliases)


SEVEN_SISTERS = ExceptionGroup.from_dict(
    "moscow_seven_sisters",
    {
        "countries": ["russia", "россия"],
        "cities": ["moscow", "москва"],
        "keywords": [
            "ministry",
            "ministry of foreign affairs",
            "hotel ukraina",
            "hotel leningradskaya",
            "kotelnicheskaya",
            "kudrinskaya",
            "red gates",
            "seven sisters",
            "stalinist",
            "высотка",
            "сталинская",
        ],
    },
)


# ---------------------------------------------------------------------------
# Configuration loader
# ---------------------------------------------------------------------------


@dataclass
class MatchingConfig:
    """Loaded matching configuration from matching_rules.yaml."""

    interactive: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_INTERACTIVE))
    batch: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_BATCH))
    names: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_NAMES))
    scoring: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_SCORING))
    search: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_SEARCH))
    maintenance: dict[str, float] = field(default_factory=lambda: dict(_DEFAULT_MAINTENANCE))
    exception_groups: list[ExceptionGroup] = field(default_factory=lambda: [SEVEN_SISTERS])

    @classmethod
    def from_yaml(cls, path: str | Path | None = None) -> "MatchingConfig":
        """
        Load configuration from a YAML file.

        Falls back to ATLAS_MATCHING_RULES, then to the packaged
        matching_rules.yaml.  Missing keys keep their defaults.
        """
        if path is None:
            path = os.environ.get("ATLAS_MATCHING_RULES") or DEFAULT_RULES_PATH
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        groups_raw = raw.get("exception_groups")
        if groups_raw is None:
            groups = [SEVEN_SISTERS]
        else:
            groups = [ExceptionGroup.from_dict(name, entry or {}) for name, entry in groups_raw.items()]

        config = cls(
            interactive=_overlay_section(_DEFAULT_INTERACTIVE, raw.get("interactive")),
            batch=_overlay_section(_DEFAULT_BATCH, raw.get("batch")),
            names=_overlay_section(_DEFAULT_NAMES, raw.get("names")),
            scoring=_overlay_section(_DEFAULT_SCORING, raw.get("scoring")),
            search=_overlay_section(_DEFAULT_SEARCH, raw.get("search")),
            maintenance=_overlay_section(_DEFAULT_MAINTENANCE, raw.get("maintenance")),
            exception_groups=groups,
        )
        logger.info("Loaded matching rules from %s (%d exception groups)", path, len(groups))
        return config

    def similarity(self, name_a: str | None, name_b: str | None) -> float:
        return name_similarity(
            name_a,
            name_b,
            min_token_length=int(self.names["min_token_length"]),
            qualifier_weight=float(self.names["qualifier_weight"]),
        )


def _overlay_section(defaults: dict[str, Any], raw: dict[str, Any] | None) -> dict[str, Any]:
    section = dict(defaults)
    for key, value in (raw or {}).items():
        if key not in defaults:
            logger.warning("Ignoring unknown matching rule key: %s", key)
            continue
        section[key] = value
    return section


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


def in_exception_set(record: Any, config: MatchingConfig | None = None) -> str | None:
    """Name of the first exception group containing the record, or None."""
    groups = config.exception_groups if config is not None else [SEVEN_SISTERS]
    for group in groups:
        if group.contains(record):
            return group.name
    return None


def interactive_match(a: Any, b: Any, config: MatchingConfig | None = None) -> bool:
    """Live-search rule: similar names and less than 500 m apart."""
    if config is None:
        config = MatchingConfig()
    if not (a.coordinates.is_valid() and b.coordinates.is_valid()):
        return False
    if haversine_m(a.coordinates, b.coordinates) >= config.interactive["max_distance_m"]:
        return False
    return config.similarity(a.name, b.name) >= config.interactive["min_name_similarity"]


def batch_match(a: Any, b: Any, config: MatchingConfig | None = None) -> bool:
    """
    Maintenance rule: same base name within 10 km.

    Containment only counts when both base names are long enough that a
    short generic word ("hall", "tower") cannot swallow a longer name.
    """
    if config is None:
        config = MatchingConfig()
    if not (a.coordinates.is_valid() and b.coordinates.is_valid()):
        return False
    if in_exception_set(a, config) or in_exception_set(b, config):
        return False
    if haversine_m(a.coordinates, b.coordinates) >= config.batch["max_distance_m"]:
        return False

    base_a = base_name(a.name)
    base_b = base_name(b.name)
    if not base_a or not base_b:
        return False
    if base_a == base_b:
        return True

    min_len = int(config.batch["min_base_name_length"])
    if len(base_a) < min_len or len(base_b) < min_len:
        return False
    return base_name_overlap(a.name, b.name) >= config.batch["min_base_overlap"]

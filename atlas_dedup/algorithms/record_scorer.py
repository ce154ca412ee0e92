#!/usr/bin/env python3
"""
Landmark Atlas — Record Completeness Scorer

Scores a record by how complete it is.  Each present (non-blank) field adds
its weight; the weights live in the ``scoring`` table of matching_rules.yaml
so operators can retune them without touching code.

Default weights:

    external_ref        10
    image_url            5
    canonical_map_url    2
    description          1
    city               0.5
    country            0.5
    location_text      0.5

The score only ranks records against each other when picking the base of a
merge; it has no absolute meaning.
"""

from __future__ import annotations

from typing import Any

DEFAULT_WEIGHTS: dict[str, float] = {
    "external_ref": 10.0,
    "image_url": 5.0,
    "canonical_map_url": 2.0,
    "description": 1.0,
    "city": 0.5,
    "country": 0.5,
    "location_text": 0.5,
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def score_record(record: Any, weights: dict[str, float] | None = None) -> float:
    """Sum of the weights of the record's present fields."""
    if weights is None:
        weights = DEFAULT_WEIGHTS
    return sum(
        weight
        for field_name, weight in weights.items()
        if _present(getattr(record, field_name, None))
    )

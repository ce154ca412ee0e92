"""Landmark Atlas — Entity Resolution Algorithms."""

from .name_similarity import (
    normalize_name,
    base_name,
    name_similarity,
    base_name_overlap,
    token_set_similarity,
)
from .geo_proximity import (
    Coordinate,
    haversine_m,
    within_radius,
    bounding_box,
    find_within_radius,
)
from .record_scorer import (
    DEFAULT_WEIGHTS,
    score_record,
)
from .match_policies import (
    ExceptionGroup,
    MatchingConfig,
    batch_match,
    in_exception_set,
    interactive_match,
)

__all__ = [
    "normalize_name",
    "base_name",
    "name_similarity",
    "base_name_overlap",
    "token_set_similarity",
    "Coordinate",
    "haversine_m",
    "within_radius",
    "bounding_box",
    "find_within_radius",
    "DEFAULT_WEIGHTS",
    "score_record",
    "ExceptionGroup",
    "MatchingConfig",
    "batch_match",
    "in_exception_set",
    "interactive_match",
]

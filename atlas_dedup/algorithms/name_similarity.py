#!/usr/bin/env python3
"""
Landmark Atlas — Name Matching

Canonicalizes landmark names for comparison and scores how alike two names
are.  The score is deliberately simple and explainable:

    1. identical after normalization          → 1.0
    2. one normalized name contains the other → len(shorter) / len(longer)
    3. otherwise                              → Jaccard similarity of the
                                                significant tokens

Names that differ only by a qualifier ("City Hall" vs "City Hall (West
Wing)") are additionally compared on their base names, discounted by a
qualifier weight.

A rapidfuzz token-set ratio is exposed for near-miss reporting in the batch
reconciliation report; it never drives a merge.

Dependencies:
    pip install rapidfuzz
"""

from __future__ import annotations

import re

from rapidfuzz import fuzz


DEFAULT_MIN_TOKEN_LENGTH = 3
DEFAULT_QUALIFIER_WEIGHT = 0.85

_PUNCTUATION = re.compile(r"[^\w\s]")
_MULTI_SPACE = re.compile(r"\s+")

# Qualifiers stripped when reducing a name to its base name
_PARENTHETICAL = re.compile(r"\s*\([^)]*\)")
_BRACKETED = re.compile(r"\s*\[[^\]]*\]")
# Hyphenated words ("Jean-Pierre") are not qualifiers; a spaced dash is
_DASH_QUALIFIER = re.compile(r"(?:\s+[-–—]\s*|\s*[-–—]\s+)[^-–—]*$")
_SINGLE_DESIGNATOR = re.compile(r"\s+\w$")


def normalize_name(name: str | None) -> str:
    """
    Normalize a landmark name for comparison.

    Steps:
        1. Lowercase
        2. Delete punctuation
        3. Collapse whitespace and trim

    The result is only ever used for comparison, never stored.
    """
    if not name:
        return ""
    text = name.lower()
    text = _PUNCTUATION.sub("", text)
    return _MULTI_SPACE.sub(" ", text).strip()


def base_name(name: str | None) -> str:
    """
    Reduce a name to its base form and normalize it.

    Strips parenthetical and bracketed segments, a trailing dash qualifier,
    and a trailing single-character designator:

        "City Hall (West Wing)"      → "city hall"
        "De Inktpot [annex]"         → "de inktpot"
        "Palace of Culture - Tower"  → "palace of culture"
        "Ministry Building B"        → "ministry building"
    """
    if not name:
        return ""
    cleaned = _PARENTHETICAL.sub("", name)
    cleaned = _BRACKETED.sub("", cleaned)
    without_dash = _DASH_QUALIFIER.sub("", cleaned).strip()
    if without_dash:
        cleaned = without_dash
    normalized = normalize_name(cleaned)
    stripped = _SINGLE_DESIGNATOR.sub("", normalized).strip()
    return stripped or normalized


# ---------------------------------------------------------------------------
# Scoring functions
# ---------------------------------------------------------------------------


def _tokens(text: str, min_token_length: int) -> set[str]:
    return {t for t in text.split(" ") if len(t) >= min_token_length}


def _normalized_similarity(
    norm_a: str,
    norm_b: str,
    min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH,
) -> float:
    """Similarity of two already-normalized names."""
    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return 1.0

    if norm_a in norm_b or norm_b in norm_a:
        shorter, longer = sorted((len(norm_a), len(norm_b)))
        return shorter / longer

    tokens_a = _tokens(norm_a, min_token_length)
    tokens_b = _tokens(norm_b, min_token_length)
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def name_similarity(
    name_a: str | None,
    name_b: str | None,
    *,
    min_token_length: int = DEFAULT_MIN_TOKEN_LENGTH,
    qualifier_weight: float = DEFAULT_QUALIFIER_WEIGHT,
) -> float:
    """
    Similarity of two raw landmark names, in [0.0, 1.0].

    Parameters
    ----------
    name_a, name_b : str
        Raw names (normalization is handled internally).
    min_token_length : int
        Tokens shorter than this are ignored by the Jaccard fallback.
    qualifier_weight : float
        Discount applied when the names only match once qualifiers are
        stripped.  0 disables the base-name comparison.

    Symmetric: name_similarity(a, b) == name_similarity(b, a).
    """
    norm_a = normalize_name(name_a)
    norm_b = normalize_name(name_b)
    score = _normalized_similarity(norm_a, norm_b, min_token_length)

    if score >= 1.0 or qualifier_weight <= 0:
        return score

    base_a = base_name(name_a)
    base_b = base_name(name_b)
    if (base_a, base_b) != (norm_a, norm_b):
        qualified = qualifier_weight * _normalized_similarity(
            base_a, base_b, min_token_length
        )
        score = max(score, qualified)

    return score


def base_name_overlap(name_a: str | None, name_b: str | None) -> float:
    """
    How much of one base name the other covers.

    1.0 for equal base names, len(shorter)/len(longer) when one contains the
    other, 0.0 otherwise (including when either base name is empty).
    """
    base_a = base_name(name_a)
    base_b = base_name(name_b)
    if not base_a or not base_b:
        return 0.0
    if base_a == base_b:
        return 1.0
    if base_a in base_b or base_b in base_a:
        shorter, longer = sorted((len(base_a), len(base_b)))
        return shorter / longer
    return 0.0


def token_set_similarity(name_a: str | None, name_b: str | None) -> float:
    """
    Token-set ratio from rapidfuzz on the normalized names.

    Tolerates one name being a superset of the other:
        "Palace of Culture and Science" vs "Palace of Culture"

    Returns a value in [0.0, 1.0].
    """
    norm_a = normalize_name(name_a)
    norm_b = normalize_name(name_b)
    if not norm_a or not norm_b:
        return 0.0
    return fuzz.token_set_ratio(norm_a, norm_b) / 100.0

"""
Landmark Atlas — Service Settings

Configuration via environment variables with local-development defaults.
Matching thresholds live separately in atlas_dedup/config/matching_rules.yaml.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

STORE_CONFIG = {
    "base_url": os.environ.get("ATLAS_STORE_URL", "https://api.baserow.io"),
    "table_id": os.environ.get("ATLAS_STORE_TABLE_ID", ""),
    "token": os.environ.get("ATLAS_STORE_TOKEN", ""),
}

GEMINI_CONFIG = {
    "api_key": os.environ.get("ATLAS_GEMINI_API_KEY", ""),
    "model": os.environ.get("ATLAS_GEMINI_MODEL", "gemini-2.5-flash"),
    "base_url": os.environ.get(
        "ATLAS_GEMINI_URL", "https://generativelanguage.googleapis.com/v1beta"
    ),
}

PLACES_CONFIG = {
    "api_key": os.environ.get("ATLAS_PLACES_API_KEY", ""),
    "base_url": os.environ.get("ATLAS_PLACES_URL", "https://maps.googleapis.com/maps/api/place"),
}

NOMINATIM_CONFIG = {
    "base_url": os.environ.get("ATLAS_NOMINATIM_URL", "https://nominatim.openstreetmap.org"),
    "user_agent": os.environ.get("ATLAS_NOMINATIM_USER_AGENT", "LandmarkAtlas/0.1"),
    "min_interval_s": float(os.environ.get("ATLAS_NOMINATIM_INTERVAL", "1.0")),
}

BLACKLIST_PATH = os.environ.get("ATLAS_BLACKLIST_PATH", "data/blacklist.json")


@dataclass(frozen=True)
class ApiKey:
    label: str
    tier: str
    key_hash: str


def parse_api_keys(raw: str | None, admin_hash: str | None = None) -> list[ApiKey]:
    """
    Parse "label:tier:bcrypt_hash" entries separated by commas or newlines.

    bcrypt hashes contain "$" but never ":", so splitting on the first two
    colons is safe.  ATLAS_ADMIN_KEY_HASH adds a single "admin" entry.
    """
    keys: list[ApiKey] = []
    for chunk in re.split(r"[,\n]", raw or ""):
        chunk = chunk.strip()
        if not chunk:
            continue
        parts = chunk.split(":", 2)
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Malformed API key entry: {chunk[:20]!r}")
        keys.append(ApiKey(label=parts[0], tier=parts[1], key_hash=parts[2]))
    if admin_hash:
        keys.append(ApiKey(label="admin", tier="admin", key_hash=admin_hash))
    return keys


# admin routes are closed when no admin key is configured
API_KEYS = parse_api_keys(
    os.environ.get("ATLAS_API_KEYS"),
    os.environ.get("ATLAS_ADMIN_KEY_HASH"),
)

HTTP_TIMEOUT = float(os.environ.get("ATLAS_HTTP_TIMEOUT", "20"))

MATCHING_RULES_PATH = os.environ.get("ATLAS_MATCHING_RULES") or None

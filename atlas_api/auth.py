"""
Landmark Atlas — API Key Authentication

Keys are configured, not stored: each entry in the keyring is a label, a tier
and a bcrypt hash (see settings.API_KEYS / ATLAS_API_KEYS).  Requests without
a key are anonymous public callers; maintenance routes require admin.

Resolved keys are cached for five minutes so bcrypt runs once per key.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

import bcrypt
from fastapi import HTTPException, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import RequestResponseEndpoint

from . import settings

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"

TIER_HIERARCHY = {
    "public": 0,
    "admin": 1,
}


@dataclass(frozen=True)
class AuthContext:
    """Who is calling; attached to request.state.auth."""

    tier: str = "public"
    actor_id: str = "anonymous"
    actor_type: str = "anonymous"

    @property
    def is_anonymous(self) -> bool:
        return self.actor_type == "anonymous"


ANONYMOUS = AuthContext()

# ---------------------------------------------------------------------------
# Resolved-key cache
# ---------------------------------------------------------------------------

_RESOLVED: dict[str, tuple[AuthContext, float]] = {}
_CACHE_TTL = 300


def _cache_get(api_key: str) -> AuthContext | None:
    entry = _RESOLVED.get(api_key)
    if entry is None:
        return None
    ctx, resolved_at = entry
    if time.monotonic() - resolved_at > _CACHE_TTL:
        _RESOLVED.pop(api_key, None)
        return None
    return ctx


def _cache_set(api_key: str, ctx: AuthContext) -> None:
    _RESOLVED[api_key] = (ctx, time.monotonic())


def clear_cache() -> None:
    """Forget resolved keys, e.g. after rotating the keyring."""
    _RESOLVED.clear()


# ---------------------------------------------------------------------------
# Keyring
# ---------------------------------------------------------------------------


def hash_key(api_key: str, rounds: int = 12) -> str:
    """bcrypt hash for a keyring entry."""
    return bcrypt.hashpw(api_key.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def _key_matches(api_key: str, key_hash: str, label: str) -> bool:
    try:
        return bcrypt.checkpw(api_key.encode("utf-8"), key_hash.encode("utf-8"))
    except ValueError:
        logger.error("Auth: malformed bcrypt hash for key '%s'", label)
        return False


def _validate_key(api_key: str, keyring: list[settings.ApiKey] | None = None) -> AuthContext | None:
    """Match a presented key against the keyring; highest tier wins on overlap."""
    keyring = settings.API_KEYS if keyring is None else keyring
    if not keyring:
        logger.warning("Auth: no API keys configured, rejecting presented key")
        return None

    ordered = sorted(keyring, key=lambda k: TIER_HIERARCHY.get(k.tier, -1), reverse=True)
    for entry in ordered:
        if entry.tier not in TIER_HIERARCHY:
            logger.warning("Auth: key '%s' has unknown tier '%s', skipped", entry.label, entry.tier)
            continue
        if _key_matches(api_key, entry.key_hash, entry.label):
            actor_type = "operator" if entry.tier == "admin" else "api_user"
            return AuthContext(tier=entry.tier, actor_id=f"apikey:{entry.label}", actor_type=actor_type)
    return None


# ---------------------------------------------------------------------------
# Middleware and dependency
# ---------------------------------------------------------------------------


async def auth_middleware(request: Request, call_next: RequestResponseEndpoint) -> Response:
    """
    Attach an AuthContext to every request.

    - no key: anonymous public caller
    - known key: that key's tier
    - unknown key: 401, even on public routes
    """
    api_key = request.headers.get(API_KEY_HEADER, "").strip()
    if not api_key:
        request.state.auth = ANONYMOUS
        return await call_next(request)

    ctx = _cache_get(api_key)
    if ctx is None:
        ctx = _validate_key(api_key)
        if ctx is None:
            logger.info("Auth: rejected unknown key on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=401,
                content={"detail": "Invalid API key"},
                headers={"WWW-Authenticate": "ApiKey"},
            )
        _cache_set(api_key, ctx)

    request.state.auth = ctx
    return await call_next(request)


def require_tier(min_tier: str) -> Callable:
    """Route dependency: 401 for anonymous callers below min_tier, 403 for keyed ones."""
    min_level = TIER_HIERARCHY[min_tier]

    async def _check(request: Request) -> AuthContext:
        auth: AuthContext = getattr(request.state, "auth", ANONYMOUS)
        if TIER_HIERARCHY.get(auth.tier, 0) >= min_level:
            return auth
        if auth.is_anonymous:
            raise HTTPException(
                status_code=401,
                detail=f"Authentication required. Provide an API key via the {API_KEY_HEADER} header.",
            )
        raise HTTPException(
            status_code=403,
            detail=f"Insufficient permissions. Required tier: {min_tier}, your tier: {auth.tier}",
        )

    return _check

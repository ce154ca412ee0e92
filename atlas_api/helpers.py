"""Shared helpers for the upstream HTTP clients and the route handlers."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx
from fastapi import HTTPException, Request

from .errors import AtlasError, RateLimitError, TransientIOError

logger = logging.getLogger(__name__)

# Substrings that mark a quota / overload response body
_RATE_LIMIT_MARKERS = ("quota", "rate limit", "429", "resource_exhausted", "unavailable", "model is overloaded")


def iso(dt: datetime | None) -> str | None:
    """Convert a datetime to ISO string."""
    if dt is None:
        return None
    return dt.isoformat()


def looks_rate_limited(text: str | None) -> bool:
    lowered = (text or "").lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def check_response(response: httpx.Response, source: str) -> None:
    """
    Translate an upstream HTTP status into the atlas error taxonomy.

    429 and 503 become RateLimitError; any other 4xx/5xx becomes
    TransientIOError carrying a short excerpt of the body.
    """
    if response.is_success:
        return
    body = response.text[:300]
    if response.status_code in (429, 503):
        raise RateLimitError(
            f"{source} rate limited: {response.status_code} {body}",
            source=source,
            retry_after=_retry_after(response),
        )
    raise TransientIOError(
        f"{source} error: {response.status_code} {body}",
        source=source,
        upstream_status=response.status_code,
    )


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    source: str,
    **kwargs: Any,
) -> httpx.Response:
    """Issue a request, mapping transport failures and bad statuses to atlas errors."""
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransientIOError(f"{source} timed out: {e}", source=source) from e
    except httpx.HTTPError as e:
        raise TransientIOError(f"{source} unreachable: {e}", source=source) from e
    check_response(response, source)
    return response


def json_body(response: httpx.Response, source: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise TransientIOError(f"{source} returned malformed JSON", source=source) from e


# ---------------------------------------------------------------------------
# Route helpers
# ---------------------------------------------------------------------------


def get_session(request: Request) -> Any:
    """The AtlasSession built at startup; 503 until it exists."""
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return session


def http_error(e: AtlasError) -> HTTPException:
    """Map an atlas error onto the HTTP status a caller should see."""
    headers = None
    if isinstance(e, RateLimitError) and e.retry_after:
        headers = {"Retry-After": str(int(e.retry_after))}
    return HTTPException(status_code=e.status_code, detail=e.message or str(e), headers=headers)

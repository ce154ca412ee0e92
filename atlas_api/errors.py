"""
Landmark Atlas — Error Taxonomy

    ValidationError            invalid coordinates; filtered on read paths
    NotFoundError              name / place / nearest lookup miss     → 404
    ConflictError              manual entry of a stored landmark      → 409
    RateLimitError             429, quota or overloaded upstream      → 429
    TransientIOError           network, 5xx or malformed responses    → 502
    PartialEnrichmentFailure   enrichment / background persistence; logged only
"""

from __future__ import annotations


class AtlasError(Exception):
    """Base class for every error raised by the atlas services."""

    status_code = 500

    def __init__(
        self,
        message: str = "",
        *,
        source: str | None = None,
        upstream_status: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.source = source
        self.upstream_status = upstream_status


class ValidationError(AtlasError):
    status_code = 422


class NotFoundError(AtlasError):
    status_code = 404


class ConflictError(AtlasError):
    status_code = 409


class RateLimitError(AtlasError):
    """An upstream collaborator refused the call because of quota or load."""

    status_code = 429
    is_rate_limit = True

    def __init__(
        self,
        message: str = "",
        *,
        source: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, source=source)
        self.retry_after = retry_after


class TransientIOError(AtlasError):
    status_code = 502


class PartialEnrichmentFailure(AtlasError):
    """Never surfaced to callers; raised and caught inside background work."""

"""Error taxonomy for the search pipeline.

Only ValidationError, RateLimitExceeded and BackendUnavailable reach callers.
The collaborator errors below are raised by backends, the enhancement service
and cache stores; the orchestrator converts them into degraded outcomes.
"""

from typing import Any


class AltusError(Exception):
    """Base exception carrying a machine-readable code."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# ---------------------------------------------------------------------------
# Caller-facing
# ---------------------------------------------------------------------------


class ValidationError(AltusError):
    """Malformed request; rejected before any I/O."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        merged = dict(details or {})
        if field is not None:
            merged.setdefault("field", field)
        super().__init__(message, merged)
        self.field = field


class RateLimitExceeded(AltusError):
    """Credential exhausted its window or is serving a block."""

    code = "RATE_LIMIT_EXCEEDED"
    retryable = True

    def __init__(
        self,
        retry_after_seconds: int,
        limit: int,
        remaining: int,
        reset_at: float,
        tier: str,
    ):
        super().__init__(
            f"Rate limit exceeded for tier '{tier}'; retry after {retry_after_seconds}s",
            {
                "limit": limit,
                "remaining": remaining,
                "resetTime": reset_at,
                "retryAfter": retry_after_seconds,
                "tier": tier,
            },
        )
        self.retry_after_seconds = retry_after_seconds
        self.limit = limit
        self.remaining = remaining
        self.reset_at = reset_at
        self.tier = tier


class BackendUnavailable(AltusError):
    """Every targeted database failed."""

    code = "BACKEND_UNAVAILABLE"
    retryable = True


# ---------------------------------------------------------------------------
# Collaborator failures (never surfaced directly)
# ---------------------------------------------------------------------------


class NotFound(AltusError):
    code = "NOT_FOUND"


class BackendError(AltusError):
    code = "BACKEND_ERROR"


class BackendTimeout(BackendError):
    code = "BACKEND_TIMEOUT"


class BackendConnectionError(BackendError):
    code = "BACKEND_CONNECTION_ERROR"


class QueryError(BackendError):
    code = "QUERY_ERROR"


class EnhancementError(AltusError):
    code = "ENHANCEMENT_ERROR"


class EnhancementUnavailable(EnhancementError):
    code = "ENHANCEMENT_UNAVAILABLE"


class EnhancementTimeout(EnhancementError):
    code = "ENHANCEMENT_TIMEOUT"


class EnhancementRateLimited(EnhancementError):
    code = "ENHANCEMENT_RATE_LIMITED"


class CacheUnavailable(AltusError):
    code = "CACHE_UNAVAILABLE"

"""Shared typed constants for search orchestration control flow."""

from dataclasses import dataclass
from enum import StrEnum

from altus.contracts.search_v1 import RateLimitTier


class OutcomeKind(StrEnum):
    """Result tags for steps that can degrade."""

    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


class CacheStatus(StrEnum):
    """What a cache lookup produced."""

    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


class SearchStage(StrEnum):
    """Per-call pipeline stages, in order."""

    RATE_CHECK = "rate_check"
    CACHE_LOOKUP = "cache_lookup"
    ENHANCE = "enhance"
    FAN_OUT = "fan_out"
    AGGREGATE = "aggregate"
    CACHE_WRITE = "cache_write"


@dataclass(frozen=True)
class TierLimits:
    """Admission policy for one rate-limit tier."""

    requests_per_window: int
    burst_allowance: int
    block_seconds: int
    window_seconds: int = 3600

    @property
    def ceiling(self) -> int:
        """Requests admitted per window before the credential is blocked."""
        return self.requests_per_window + self.burst_allowance


TIER_LIMITS: dict[RateLimitTier, TierLimits] = {
    RateLimitTier.FREE: TierLimits(
        requests_per_window=1000,
        burst_allowance=50,
        block_seconds=300,
    ),
    RateLimitTier.PRO: TierLimits(
        requests_per_window=10000,
        burst_allowance=200,
        block_seconds=300,
    ),
    RateLimitTier.ENTERPRISE: TierLimits(
        requests_per_window=100000,
        burst_allowance=500,
        block_seconds=60,
    ),
}

CACHE_NAMESPACE = "search:"

# Relevance scoring weights
PHRASE_BONUS = 0.3
TITLE_MULTIPLIER = 1.5
# Score for a row the backend matched but that shares no term with the query.
BACKEND_CONFIRMED_FLOOR = 0.1
SNIPPET_LENGTH = 200

TITLE_LIKE_COLUMNS = frozenset(
    {"title", "name", "subject", "heading", "headline", "label"}
)
CATEGORY_FIELDS = ("category", "categories")
BOOLEAN_KEYWORDS = frozenset({"and", "or", "not"})

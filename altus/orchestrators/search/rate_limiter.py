"""Sliding-window admission control per credential.

Each credential is either Open (admitted while its window count stays within
the tier ceiling) or Blocked (rejected outright until ``blocked_until``,
regardless of window boundaries). Once a block has been served the
credential starts a fresh window.

State updates for one credential are serialized by that credential's own
lock; unrelated credentials never contend. A lock lives only while some
request for its credential holds or awaits it.
"""

import asyncio
import math
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace

from altus.contracts.search_v1 import Credential, RateLimitTier
from altus.core.logger import logger
from altus.orchestrators.search.constants import TIER_LIMITS, TierLimits


@dataclass
class RateLimitState:
    window_start: float
    count: int = 0
    blocked_until: float | None = None


@dataclass(frozen=True)
class Allowed:
    limit: int
    remaining: int
    reset_at: float

    allowed = True


@dataclass(frozen=True)
class Denied:
    retry_after_seconds: int
    limit: int
    remaining: int
    reset_at: float

    allowed = False


RateLimitDecision = Allowed | Denied


class RateLimitStore(ABC):
    """Backing store for per-credential state; swap for a shared store to distribute."""

    @abstractmethod
    async def load(self, key: str) -> RateLimitState | None:
        """Current state for ``key`` or None if never seen."""

    @abstractmethod
    async def save(self, key: str, state: RateLimitState) -> None:
        """Persist ``state`` for ``key``."""


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self) -> None:
        self._states: dict[str, RateLimitState] = {}

    async def load(self, key: str) -> RateLimitState | None:
        state = self._states.get(key)
        return replace(state) if state is not None else None

    async def save(self, key: str, state: RateLimitState) -> None:
        self._states[key] = replace(state)


class RateLimiter:
    """Tiered sliding-window limiter keyed by credential id."""

    def __init__(
        self,
        store: RateLimitStore | None = None,
        tiers: Mapping[RateLimitTier, TierLimits] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store or InMemoryRateLimitStore()
        self._tiers = dict(tiers or TIER_LIMITS)
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def limits_for(self, tier: RateLimitTier) -> TierLimits:
        return self._tiers.get(tier, self._tiers[RateLimitTier.FREE])

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def check(self, credential: Credential) -> RateLimitDecision:
        """Admit or reject one request, consuming a slot when admitted."""
        limits = self.limits_for(credential.tier)
        ceiling = limits.ceiling
        key = credential.key_id

        async with self._locked(key):
            now = self._clock()
            state = await self._store.load(key) or RateLimitState(window_start=now)

            if state.blocked_until is not None:
                if now < state.blocked_until:
                    return Denied(
                        retry_after_seconds=max(1, math.ceil(state.blocked_until - now)),
                        limit=ceiling,
                        remaining=0,
                        reset_at=state.blocked_until,
                    )
                state = RateLimitState(window_start=now)

            if now - state.window_start >= limits.window_seconds:
                state = RateLimitState(window_start=now)

            state.count += 1
            if state.count > ceiling:
                state.blocked_until = now + limits.block_seconds
                await self._store.save(key, state)
                logger.warning(
                    "Rate limit: credential %s (%s) blocked for %ss after %s requests",
                    key,
                    credential.tier,
                    limits.block_seconds,
                    ceiling,
                )
                return Denied(
                    retry_after_seconds=limits.block_seconds,
                    limit=ceiling,
                    remaining=0,
                    reset_at=state.blocked_until,
                )

            await self._store.save(key, state)
            return Allowed(
                limit=ceiling,
                remaining=ceiling - state.count,
                reset_at=state.window_start + limits.window_seconds,
            )

    async def peek(self, credential: Credential) -> RateLimitDecision:
        """Current quota for ``credential`` without consuming a slot."""
        limits = self.limits_for(credential.tier)
        ceiling = limits.ceiling
        key = credential.key_id

        async with self._locked(key):
            now = self._clock()
            state = await self._store.load(key)

        if state is None:
            return Allowed(limit=ceiling, remaining=ceiling, reset_at=now + limits.window_seconds)
        if state.blocked_until is not None and now < state.blocked_until:
            return Denied(
                retry_after_seconds=max(1, math.ceil(state.blocked_until - now)),
                limit=ceiling,
                remaining=0,
                reset_at=state.blocked_until,
            )
        if state.blocked_until is not None or now - state.window_start >= limits.window_seconds:
            return Allowed(limit=ceiling, remaining=ceiling, reset_at=now + limits.window_seconds)
        return Allowed(
            limit=ceiling,
            remaining=max(0, ceiling - state.count),
            reset_at=state.window_start + limits.window_seconds,
        )

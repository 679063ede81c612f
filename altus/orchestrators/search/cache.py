"""Response cache: an in-memory TTL store and the orchestrator-facing adapter.

The adapter never raises. Store failures are reported as CacheStatus.ERROR
and the orchestrator treats them as a miss.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from altus.contracts.search_v1 import SearchResponse
from altus.core.logger import logger
from altus.orchestrators.search.constants import CacheStatus
from altus.orchestrators.search.errors import CacheUnavailable
from altus.orchestrators.search.interface import CacheStore
from altus.orchestrators.search.outcomes import Outcome


class InMemoryCacheStore(CacheStore):
    """TTL cache bounded by entry count (least recently used evicted first)."""

    def __init__(self, max_entries: int = 10000, clock: Callable[[], float] = time.monotonic):
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._max_entries = max(1, max_entries)
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class SearchCache:
    """Stores SearchResponse payloads as plain dicts behind a CacheStore."""

    def __init__(self, store: CacheStore, ttl_seconds: int = 300):
        self._store = store
        self._ttl = ttl_seconds

    async def get(self, key: str) -> tuple[CacheStatus, SearchResponse | None]:
        try:
            payload = await self._store.get(key)
        except Exception as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return CacheStatus.ERROR, None
        if payload is None:
            return CacheStatus.MISS, None
        try:
            return CacheStatus.HIT, SearchResponse.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning("Cache entry %s is unreadable, ignoring: %s", key, e)
            return CacheStatus.ERROR, None

    async def set(self, key: str, response: SearchResponse) -> Outcome[None]:
        try:
            payload = response.model_dump(mode="json", by_alias=True)
            await self._store.set(key, payload, self._ttl)
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", key, e)
            return Outcome.degraded(
                f"cache write failed: {e}", error=CacheUnavailable(str(e), {"key": key})
            )
        return Outcome.ok(None)

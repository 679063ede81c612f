"""Collaborator interfaces consumed by the orchestrator.

Connection ownership, schema discovery and credential storage live outside
this package; the orchestrator only talks to them through these contracts.
"""

from abc import ABC, abstractmethod
from typing import Any

from altus.contracts.search_v1 import (
    AnalyticsEvent,
    DatabaseTarget,
    RawRow,
    SearchMode,
    TableTarget,
)
from altus.orchestrators.search.errors import NotFound


class ConnectionProvider(ABC):
    """Resolves a caller's databases into search targets."""

    @abstractmethod
    async def get_targets(
        self, caller_id: str, database_ids: list[str]
    ) -> list[DatabaseTarget]:
        """Targets for ``database_ids`` (all owned databases when empty).

        Raises NotFound when a requested id is not owned by the caller.
        """


class FullTextBackend(ABC):
    """Runs one full-text query against one database."""

    @abstractmethod
    async def query(
        self,
        target: DatabaseTarget,
        text: str,
        tables: list[TableTarget],
        mode: SearchMode,
        limit: int,
        offset: int = 0,
    ) -> list[RawRow]:
        """Matching rows, best first.

        ``tables`` is already restricted to the requested tables and columns.
        Raises BackendTimeout, BackendConnectionError or QueryError.
        """


class SemanticEnhancementService(ABC):
    """External query rewriter."""

    @abstractmethod
    async def rewrite(self, text: str) -> dict[str, Any]:
        """Return ``{"optimizedQuery": str, "confidence": float}``.

        Raises EnhancementUnavailable, EnhancementTimeout or EnhancementRateLimited.
        """

    async def close(self) -> None:
        """Release network clients. Called once when the orchestrator shuts down."""


class CacheStore(ABC):
    """Key/value store with per-entry TTL. Must be safe for concurrent use."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Stored value, or None on miss/expiry."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` for ``ttl_seconds``."""


class AnalyticsSink(ABC):
    """Receives one event per completed search."""

    @abstractmethod
    async def record(self, event: AnalyticsEvent) -> None:
        """Persist ``event``. Callers never wait on or inspect the outcome."""


class StaticConnectionProvider(ConnectionProvider):
    """In-memory registry of caller -> databases."""

    def __init__(self, targets_by_caller: dict[str, list[DatabaseTarget]] | None = None):
        self._targets: dict[str, list[DatabaseTarget]] = {
            caller: list(targets) for caller, targets in (targets_by_caller or {}).items()
        }

    def register(self, caller_id: str, target: DatabaseTarget) -> None:
        owned = self._targets.setdefault(caller_id, [])
        owned[:] = [t for t in owned if t.id != target.id]
        owned.append(target)

    async def get_targets(
        self, caller_id: str, database_ids: list[str]
    ) -> list[DatabaseTarget]:
        owned = self._targets.get(caller_id, [])
        if not database_ids:
            return list(owned)
        by_id = {t.id: t for t in owned}
        missing = [db for db in database_ids if db not in by_id]
        if missing:
            raise NotFound(
                f"Database(s) not found for caller: {', '.join(missing)}",
                {"databases": missing},
            )
        return [by_id[db] for db in database_ids]

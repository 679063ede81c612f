"""Federated search: rate limiting, caching, enhancement, fan-out and ranking."""

from altus.orchestrators.search.interface import (
    AnalyticsSink,
    CacheStore,
    ConnectionProvider,
    FullTextBackend,
    SemanticEnhancementService,
)
from altus.orchestrators.search.orchestrator import SearchOrchestrator

__all__ = [
    "AnalyticsSink",
    "CacheStore",
    "ConnectionProvider",
    "FullTextBackend",
    "SearchOrchestrator",
    "SemanticEnhancementService",
]

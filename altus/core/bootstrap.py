"""Wiring: builds a SearchOrchestrator from configuration and collaborators."""

from altus.backends.mysql import MySQLFullTextBackend
from altus.core.config import Config, config
from altus.core.logger import logger
from altus.llm.rewrite_client import LLMQueryRewriter
from altus.orchestrators.search.aggregator import ResultAggregator
from altus.orchestrators.search.analytics import InMemoryAnalyticsSink
from altus.orchestrators.search.cache import InMemoryCacheStore, SearchCache
from altus.orchestrators.search.enhancer import QueryEnhancer
from altus.orchestrators.search.executor import DatabaseFanOutExecutor
from altus.orchestrators.search.interface import (
    AnalyticsSink,
    CacheStore,
    ConnectionProvider,
    FullTextBackend,
    SemanticEnhancementService,
)
from altus.orchestrators.search.orchestrator import SearchOrchestrator
from altus.orchestrators.search.rate_limiter import RateLimiter, RateLimitStore


def build_orchestrator(
    connections: ConnectionProvider,
    *,
    backend: FullTextBackend | None = None,
    cache_store: CacheStore | None = None,
    enhancement_service: SemanticEnhancementService | None = None,
    analytics: AnalyticsSink | None = None,
    rate_limit_store: RateLimitStore | None = None,
    settings: Config | None = None,
) -> SearchOrchestrator:
    """Assemble the search pipeline; every collaborator may be overridden.

    Defaults: MySQL full-text backend, in-memory cache and rate-limit state,
    the LLM rewriter when ALTUS_ENHANCER_URL is set, in-memory analytics.
    """
    settings = settings or config
    for problem in settings.validate():
        logger.warning("Config: %s", problem)

    if enhancement_service is None and settings.enhancer_url:
        enhancement_service = LLMQueryRewriter(
            base_url=settings.enhancer_url,
            model=settings.enhancer_model,
            timeout=settings.enhancer_timeout,
        )

    tier_timeouts = settings.tier_timeouts()
    orchestrator = SearchOrchestrator(
        connections=connections,
        executor=DatabaseFanOutExecutor(
            backend or MySQLFullTextBackend(),
            max_concurrency=settings.max_concurrency,
            timeout=tier_timeouts["free"],
        ),
        rate_limiter=RateLimiter(store=rate_limit_store),
        cache=SearchCache(
            cache_store or InMemoryCacheStore(max_entries=settings.cache_max_entries),
            ttl_seconds=settings.cache_ttl_seconds,
        ),
        enhancer=QueryEnhancer(
            enhancement_service,
            timeout=settings.enhancer_timeout,
            min_confidence=settings.enhancer_min_confidence,
            enhance_natural=settings.enhance_natural,
        ),
        aggregator=ResultAggregator(suggestion_count=settings.suggestion_count),
        analytics=analytics or InMemoryAnalyticsSink(max_events=settings.analytics_buffer),
        tier_timeouts=tier_timeouts,
        slow_database_ms=settings.slow_database_ms,
    )
    logger.info(
        "Search orchestrator ready: concurrency=%s cache_ttl=%ss enhancer=%s",
        settings.max_concurrency,
        settings.cache_ttl_seconds,
        "on" if enhancement_service is not None else "off",
    )
    return orchestrator

"""Federated search orchestrator.

Pipeline per call:
  1. Rate check (reject when the credential is exhausted or blocked)
  2. Cache lookup (a hit skips every later stage)
  3. Resolve the caller's databases
  4. Query enhancement (semantic mode; degrades to the raw query)
  5. Fan-out to every database in parallel (per-database failures isolated)
  6. Aggregate: score, order, paginate, summarize
  7. Cache write (complete results only)
  8. Analytics emission (fire-and-forget)
"""

import time
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime

from altus.contracts.search_v1 import (
    AnalyticsEvent,
    Credential,
    DatabaseTarget,
    QuerySuggestion,
    SearchRequest,
    SearchResponse,
)
from altus.core.logger import logger
from altus.observability import flush, traceable
from altus.orchestrators.search.advisor import suggest_optimizations
from altus.orchestrators.search.aggregator import ResultAggregator
from altus.orchestrators.search.analytics import AnalyticsEmitter
from altus.orchestrators.search.cache import SearchCache
from altus.orchestrators.search.cache_keys import build_key
from altus.orchestrators.search.constants import CacheStatus, SearchStage
from altus.orchestrators.search.enhancer import Enhancement, QueryEnhancer
from altus.orchestrators.search.errors import (
    BackendUnavailable,
    NotFound,
    RateLimitExceeded,
    ValidationError,
)
from altus.orchestrators.search.executor import DatabaseFanOutExecutor, FanOutResult
from altus.orchestrators.search.interface import AnalyticsSink, ConnectionProvider
from altus.orchestrators.search.rate_limiter import Denied, RateLimiter


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 1)


def _title_columns(targets: list[DatabaseTarget]) -> dict[tuple[str, str], str]:
    return {
        (t.id, table.name): table.title_column
        for t in targets
        for table in t.tables
        if table.title_column
    }


class SearchOrchestrator:
    """Sequences rate limiting, caching, enhancement, fan-out and aggregation."""

    def __init__(
        self,
        connections: ConnectionProvider,
        executor: DatabaseFanOutExecutor,
        rate_limiter: RateLimiter,
        cache: SearchCache | None = None,
        enhancer: QueryEnhancer | None = None,
        aggregator: ResultAggregator | None = None,
        analytics: AnalyticsSink | None = None,
        tier_timeouts: Mapping[str, float] | None = None,
        slow_database_ms: float = 1000.0,
    ):
        self._connections = connections
        self._executor = executor
        self._rate_limiter = rate_limiter
        self._cache = cache
        self._enhancer = enhancer
        self._aggregator = aggregator or ResultAggregator()
        self._analytics = AnalyticsEmitter(analytics)
        self._tier_timeouts = dict(tier_timeouts or {})
        self._slow_database_ms = slow_database_ms

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def analytics(self) -> AnalyticsEmitter:
        return self._analytics

    async def close(self) -> None:
        """Release collaborators once no more searches will run."""
        await self._analytics.drain()
        if self._enhancer is not None:
            await self._enhancer.close()
        flush()

    @traceable(name="federated_search", run_type="chain")
    async def search(
        self,
        request: SearchRequest,
        credential: Credential,
        request_id: str | None = None,
    ) -> SearchResponse:
        """Run one search.

        Raises:
            RateLimitExceeded: the credential has no capacity left.
            ValidationError: a requested database is not owned by the caller.
            BackendUnavailable: every targeted database failed.
        """
        token = logger.bind_request(request_id or uuid.uuid4().hex)
        try:
            return await self._run(request, credential)
        finally:
            logger.unbind_request(token)

    async def _run(self, request: SearchRequest, credential: Credential) -> SearchResponse:
        pipeline_start = time.monotonic()
        timing_ms: dict[str, float] = {}

        # 1. Rate check
        t0 = time.monotonic()
        decision = await self._rate_limiter.check(credential)
        timing_ms[SearchStage.RATE_CHECK] = _elapsed_ms(t0)
        if isinstance(decision, Denied):
            raise RateLimitExceeded(
                retry_after_seconds=decision.retry_after_seconds,
                limit=decision.limit,
                remaining=decision.remaining,
                reset_at=decision.reset_at,
                tier=str(credential.tier),
            )

        # 2. Cache lookup
        key = build_key(request)
        if self._cache is not None:
            t0 = time.monotonic()
            status, cached = await self._cache.get(key)
            timing_ms[SearchStage.CACHE_LOOKUP] = _elapsed_ms(t0)
            if status == CacheStatus.HIT and cached is not None:
                response = cached.model_copy(
                    update={"execution_time_ms": _elapsed_ms(pipeline_start), "cached": True}
                )
                self._emit(request, response, databases=[])
                logger.search_completed(
                    len(response.results),
                    response.total_count,
                    response.execution_time_ms,
                    cached=True,
                )
                return response

        logger.search_started(
            request.caller_id, request.query, str(request.mode), len(request.database_ids)
        )

        # 3. Targets
        try:
            targets = await self._connections.get_targets(request.caller_id, request.database_ids)
        except NotFound as e:
            raise ValidationError(e.message, field="databases", details=e.details) from e
        if not targets:
            logger.info("Caller %s has no databases to search", request.caller_id)
            return SearchResponse(
                execution_time_ms=_elapsed_ms(pipeline_start),
                page=request.offset // request.limit + 1,
                limit=request.limit,
            )

        # 4. Enhancement
        enhancement: Enhancement | None = None
        enhancement_degraded = False
        search_text = request.query
        if self._enhancer is not None and self._enhancer.applies_to(request.mode):
            t0 = time.monotonic()
            outcome = await self._enhancer.enhance(request.query)
            timing_ms[SearchStage.ENHANCE] = _elapsed_ms(t0)
            enhancement = outcome.value
            enhancement_degraded = outcome.is_degraded
            if enhancement_degraded:
                logger.warning("Enhancement degraded (%s); searching raw query", outcome.reason)
            if enhancement is not None:
                search_text = enhancement.optimized_query

        # 5. Fan-out
        t0 = time.monotonic()
        fan_out = await self._executor.execute_all(
            targets,
            search_text,
            tables=request.tables,
            columns=request.columns,
            mode=request.mode,
            limit=request.limit,
            offset=request.offset,
            timeout=self._tier_timeouts.get(str(credential.tier)),
        )
        timing_ms[SearchStage.FAN_OUT] = _elapsed_ms(t0)
        if fan_out.all_failed:
            raise BackendUnavailable(
                f"All {len(fan_out.attempted)} targeted databases are unavailable",
                {
                    "failedDatabases": fan_out.failed_ids,
                    "errors": {f.database_id: f.code for f in fan_out.failures},
                },
            )

        # 6. Aggregate
        t0 = time.monotonic()
        extra: list[QuerySuggestion] = []
        if enhancement is not None and (suggestion := enhancement.as_suggestion()):
            extra.append(suggestion)
        response = self._aggregator.aggregate(
            fan_out.rows,
            request.query,
            limit=request.limit,
            offset=request.offset,
            mode=request.mode,
            title_columns=_title_columns(targets),
            extra_suggestions=extra,
        )
        timing_ms[SearchStage.AGGREGATE] = _elapsed_ms(t0)

        response = response.model_copy(
            update={
                "execution_time_ms": _elapsed_ms(pipeline_start),
                "query_optimization": suggest_optimizations(
                    request, targets, fan_out, self._slow_database_ms
                ),
                "failed_databases": fan_out.failed_ids,
                "trends": self._trends(request),
            }
        )

        # 7. Cache write; partial or unenhanced results are not cached
        if self._cache is not None and not fan_out.failures and not enhancement_degraded:
            t0 = time.monotonic()
            await self._cache.set(key, response)
            timing_ms[SearchStage.CACHE_WRITE] = _elapsed_ms(t0)

        # 8. Analytics
        self._emit(request, response, databases=[t.id for t in targets], fan_out=fan_out)

        logger.debug("Search timings: %s", timing_ms)
        logger.search_completed(
            len(response.results),
            response.total_count,
            response.execution_time_ms,
            cached=False,
            failed=len(fan_out.failures),
        )
        return response

    def _trends(self, request: SearchRequest):
        if not request.include_analytics:
            return None
        trends = getattr(self._analytics.sink, "trends", None)
        if not callable(trends):
            return None
        return trends(request.caller_id)

    def _emit(
        self,
        request: SearchRequest,
        response: SearchResponse,
        databases: list[str],
        fan_out: FanOutResult | None = None,
    ) -> None:
        try:
            event = AnalyticsEvent(
                caller_id=request.caller_id,
                query=request.query,
                mode=request.mode,
                result_count=response.total_count,
                execution_time_ms=response.execution_time_ms,
                cached=response.cached,
                databases=databases,
                failed_databases=fan_out.failed_ids if fan_out else [],
                categories=[c.name for c in response.categories],
                timestamp=datetime.now(UTC),
            )
            self._analytics.emit(event)
        except Exception as e:
            logger.warning("Analytics event dropped: %s", e)

"""Analytics sinks, trend computation and fire-and-forget emission."""

import asyncio
from collections import Counter, deque
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from altus.contracts.search_v1 import AnalyticsEvent, Period, TrendInsight
from altus.core.logger import LogEvent, logger
from altus.orchestrators.search.interface import AnalyticsSink

PERIOD_SPANS: dict[Period, timedelta] = {
    Period.DAY: timedelta(days=1),
    Period.WEEK: timedelta(weeks=1),
    Period.MONTH: timedelta(days=30),
    Period.THREE_MONTHS: timedelta(days=90),
    Period.SIX_MONTHS: timedelta(days=180),
    Period.YEAR: timedelta(days=365),
}


def compute_trend(
    events: list[AnalyticsEvent], period: Period, now: datetime, top_n: int = 5
) -> TrendInsight:
    """Summarize the events that fall inside ``period`` ending at ``now``."""
    since = now - PERIOD_SPANS[period]
    window = [e for e in events if e.timestamp >= since]
    if not window:
        return TrendInsight(period=period)
    queries = Counter(" ".join(e.query.lower().split()) for e in window)
    categories = Counter(c for e in window for c in e.categories)
    avg = sum(e.execution_time_ms for e in window) / len(window)
    return TrendInsight(
        period=period,
        top_queries=[q for q, _ in sorted(queries.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]],
        query_volume=len(window),
        avg_response_time=round(avg, 1),
        popular_categories=[
            c for c, _ in sorted(categories.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
        ],
    )


class InMemoryAnalyticsSink(AnalyticsSink):
    """Keeps the most recent events and derives per-caller trends from them."""

    def __init__(
        self,
        max_events: int = 10000,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self._events: deque[AnalyticsEvent] = deque(maxlen=max_events)
        self._clock = clock

    async def record(self, event: AnalyticsEvent) -> None:
        self._events.append(event)

    def events(self, caller_id: str | None = None) -> list[AnalyticsEvent]:
        if caller_id is None:
            return list(self._events)
        return [e for e in self._events if e.caller_id == caller_id]

    def trends(
        self, caller_id: str, periods: tuple[Period, ...] = (Period.DAY, Period.WEEK)
    ) -> list[TrendInsight]:
        events = self.events(caller_id)
        now = self._clock()
        return [compute_trend(events, p, now) for p in periods]


class LogAnalyticsSink(AnalyticsSink):
    """Writes each event to the JSON-lines event log."""

    async def record(self, event: AnalyticsEvent) -> None:
        logger.log_event(
            LogEvent(
                event_type="SEARCH_ANALYTICS",
                timestamp=event.timestamp.isoformat(),
                data=event.model_dump(mode="json"),
            )
        )


class AnalyticsEmitter:
    """Schedules sink writes as background tasks; failures are only logged."""

    def __init__(self, sink: AnalyticsSink | None):
        self._sink = sink
        self._pending: set[asyncio.Task] = set()

    @property
    def sink(self) -> AnalyticsSink | None:
        return self._sink

    def emit(self, event: AnalyticsEvent) -> None:
        if self._sink is None:
            return
        try:
            task = asyncio.get_running_loop().create_task(self._record(event))
        except RuntimeError as e:
            logger.warning("Analytics not recorded (no running loop): %s", e)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record(self, event: AnalyticsEvent) -> None:
        try:
            await self._sink.record(event)
        except Exception as e:
            logger.warning("Analytics sink failed: %s", e)

    async def drain(self) -> None:
        """Wait for in-flight writes (used at shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

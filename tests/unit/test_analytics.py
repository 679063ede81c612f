from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta

import pytest

from altus.contracts.search_v1 import AnalyticsEvent, Period, SearchMode
from altus.core.logger import logger
from altus.orchestrators.search.analytics import (
    AnalyticsEmitter,
    InMemoryAnalyticsSink,
    LogAnalyticsSink,
    compute_trend,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _event(query: str, age: timedelta, ms: float = 10.0, caller: str = "u1", categories=()) -> AnalyticsEvent:
    return AnalyticsEvent(
        caller_id=caller,
        query=query,
        mode=SearchMode.NATURAL,
        result_count=1,
        execution_time_ms=ms,
        categories=list(categories),
        timestamp=NOW - age,
    )


def test_trend_counts_only_events_inside_the_period():
    events = [
        _event("MySQL", timedelta(hours=1), ms=10, categories=["db"]),
        _event("mysql", timedelta(hours=2), ms=30, categories=["db", "ops"]),
        _event("redis", timedelta(hours=3), ms=20),
        _event("old", timedelta(days=3), ms=500),
    ]

    day = compute_trend(events, Period.DAY, NOW)
    week = compute_trend(events, Period.WEEK, NOW)

    assert day.query_volume == 3
    assert day.top_queries == ["mysql", "redis"]
    assert day.avg_response_time == pytest.approx(20.0)
    assert day.popular_categories == ["db", "ops"]
    assert week.query_volume == 4


def test_empty_period_has_zero_volume():
    trend = compute_trend([_event("x", timedelta(days=400))], Period.YEAR, NOW)
    assert trend.query_volume == 0
    assert trend.top_queries == []


@pytest.mark.asyncio
async def test_in_memory_sink_is_per_caller_and_bounded():
    sink = InMemoryAnalyticsSink(max_events=2, clock=lambda: NOW)
    await sink.record(_event("a", timedelta(minutes=1), caller="u1"))
    await sink.record(_event("b", timedelta(minutes=1), caller="u2"))
    await sink.record(_event("c", timedelta(minutes=1), caller="u1"))

    assert [e.query for e in sink.events()] == ["b", "c"]
    assert [e.query for e in sink.events("u1")] == ["c"]
    assert [t.period for t in sink.trends("u1", periods=(Period.MONTH,))] == [Period.MONTH]


@pytest.mark.asyncio
async def test_log_sink_writes_a_json_line():
    await LogAnalyticsSink().record(_event("logged query", timedelta(0)))

    last = logger.log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    entry = json.loads(last)
    assert entry["event_type"] == "SEARCH_ANALYTICS"
    assert entry["data"]["query"] == "logged query"


@pytest.mark.asyncio
async def test_emitter_does_not_block_the_caller():
    gate = asyncio.Event()
    recorded = []

    class SlowSink(InMemoryAnalyticsSink):
        async def record(self, event):
            await gate.wait()
            recorded.append(event)

    emitter = AnalyticsEmitter(SlowSink())
    emitter.emit(_event("q", timedelta(0)))

    assert recorded == []
    gate.set()
    await emitter.drain()
    assert len(recorded) == 1


def test_emit_without_running_loop_is_dropped():
    emitter = AnalyticsEmitter(InMemoryAnalyticsSink())
    emitter.emit(_event("q", timedelta(0)))

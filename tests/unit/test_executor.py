from __future__ import annotations

import asyncio

import pytest
from conftest import FakeBackend, make_target

from altus.contracts.search_v1 import SearchMode
from altus.orchestrators.search.errors import BackendConnectionError
from altus.orchestrators.search.executor import DatabaseFanOutExecutor, plan_tables


def _rows(n: int, table: str = "articles") -> list[tuple[str, dict]]:
    return [(table, {"title": f"row {i}", "content": "mysql"}) for i in range(n)]


@pytest.mark.asyncio
async def test_one_slow_database_does_not_fail_the_others():
    backend = FakeBackend(
        rows={"db1": _rows(2), "db2": _rows(3), "db3": _rows(1)},
        delays={"db2": 1.0},
    )
    executor = DatabaseFanOutExecutor(backend, timeout=0.05)
    targets = [make_target("db1"), make_target("db2"), make_target("db3")]

    result = await executor.execute_all(targets, "mysql", limit=10)

    assert result.attempted == ["db1", "db2", "db3"]
    assert result.failed_ids == ["db2"]
    assert result.failures[0].code == "BACKEND_TIMEOUT"
    assert not result.all_failed
    assert [r.database_id for r in result.rows] == ["db1", "db1", "db3"]
    assert backend.cancelled == ["db2"]


@pytest.mark.asyncio
async def test_backend_errors_are_recorded_with_their_code():
    backend = FakeBackend(
        rows={"db1": _rows(1)},
        errors={"db2": BackendConnectionError("refused"), "db3": RuntimeError("boom")},
    )
    executor = DatabaseFanOutExecutor(backend)

    result = await executor.execute_all(
        [make_target("db1"), make_target("db2"), make_target("db3")], "mysql"
    )

    codes = {f.database_id: f.code for f in result.failures}
    assert codes == {"db2": "BACKEND_CONNECTION_ERROR", "db3": "BACKEND_ERROR"}
    assert [f.message for f in result.failures] == ["refused", "boom"]
    assert len(result.rows) == 1


@pytest.mark.asyncio
async def test_all_failed_when_every_database_fails():
    backend = FakeBackend(errors={"db1": RuntimeError("x"), "db2": RuntimeError("y")})
    result = await DatabaseFanOutExecutor(backend).execute_all(
        [make_target("db1"), make_target("db2")], "mysql"
    )
    assert result.all_failed
    assert result.rows == []


@pytest.mark.asyncio
async def test_each_database_is_asked_for_limit_plus_offset_from_the_top():
    backend = FakeBackend(rows={"db1": _rows(50)})

    result = await DatabaseFanOutExecutor(backend).execute_all(
        [make_target("db1")], "mysql", mode=SearchMode.BOOLEAN, limit=10, offset=20
    )

    call = backend.calls[0]
    assert (call["limit"], call["offset"], call["mode"]) == (30, 0, SearchMode.BOOLEAN)
    assert len(result.rows) == 30
    assert [r.backend_rank for r in result.rows[:3]] == [0, 1, 2]
    assert all(r.database_id == "db1" for r in result.rows)


@pytest.mark.asyncio
async def test_concurrency_is_capped():
    ids = [f"db{i}" for i in range(6)]
    backend = FakeBackend(delays={i: 0.02 for i in ids})

    await DatabaseFanOutExecutor(backend, max_concurrency=2).execute_all(
        [make_target(i) for i in ids], "mysql"
    )

    assert len(backend.calls) == 6
    assert backend.max_in_flight == 2


@pytest.mark.asyncio
async def test_cancelling_the_caller_cancels_every_subquery():
    backend = FakeBackend(delays={"db1": 5.0, "db2": 5.0})
    executor = DatabaseFanOutExecutor(backend, timeout=10.0)

    task = asyncio.create_task(
        executor.execute_all([make_target("db1"), make_target("db2")], "mysql")
    )
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert sorted(backend.cancelled) == ["db1", "db2"]


@pytest.mark.asyncio
async def test_databases_without_searchable_tables_are_skipped():
    backend = FakeBackend()
    targets = [make_target("db1"), make_target("empty", tables={"logs": []})]

    result = await DatabaseFanOutExecutor(backend).execute_all(targets, "mysql")

    assert result.attempted == ["db1"]
    assert result.skipped == ["empty"]
    assert [c["database"] for c in backend.calls] == ["db1"]


def test_plan_tables_filters_tables_and_columns():
    target = make_target(
        "db1",
        tables={"articles": ["title", "content"], "comments": ["body"], "tags": ["label"]},
    )

    assert [t.name for t in plan_tables(target, [], [])] == ["articles", "comments", "tags"]
    assert [t.name for t in plan_tables(target, ["comments"], [])] == ["comments"]

    narrowed = plan_tables(target, [], ["content", "body"])
    assert [(t.name, t.fulltext_columns) for t in narrowed] == [
        ("articles", ["content"]),
        ("comments", ["body"]),
    ]

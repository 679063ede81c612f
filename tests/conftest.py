import asyncio
import os
import tempfile
from collections.abc import Sequence
from typing import Any

import pytest

os.environ.setdefault("ALTUS_LOGS_DIR", tempfile.mkdtemp(prefix="altus-test-logs-"))

from altus.contracts.search_v1 import (  # noqa: E402
    DatabaseTarget,
    RawRow,
    SearchMode,
    TableTarget,
)
from altus.orchestrators.search.interface import (  # noqa: E402
    CacheStore,
    FullTextBackend,
    SemanticEnhancementService,
)


def make_target(
    database_id: str,
    tables: dict[str, list[str]] | None = None,
    title_columns: dict[str, str] | None = None,
) -> DatabaseTarget:
    tables = tables if tables is not None else {"articles": ["title", "content"]}
    title_columns = title_columns or {}
    return DatabaseTarget(
        id=database_id,
        name=database_id,
        tables=[
            TableTarget(name=name, fulltext_columns=cols, title_column=title_columns.get(name))
            for name, cols in tables.items()
        ],
    )


class FakeBackend(FullTextBackend):
    """Returns canned rows per database; can delay or fail specific databases."""

    def __init__(
        self,
        rows: dict[str, list[tuple[str, dict[str, Any]]]] | None = None,
        delays: dict[str, float] | None = None,
        errors: dict[str, Exception] | None = None,
    ):
        self.rows = rows or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls: list[dict[str, Any]] = []
        self.cancelled: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def query(
        self,
        target: DatabaseTarget,
        text: str,
        tables: list[TableTarget],
        mode: SearchMode,
        limit: int,
        offset: int = 0,
    ) -> list[RawRow]:
        self.calls.append(
            {
                "database": target.id,
                "text": text,
                "tables": [t.name for t in tables],
                "columns": {t.name: list(t.fulltext_columns) for t in tables},
                "mode": mode,
                "limit": limit,
                "offset": offset,
            }
        )
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(target.id, 0.0)
            if delay:
                await asyncio.sleep(delay)
            if target.id in self.errors:
                raise self.errors[target.id]
        except asyncio.CancelledError:
            self.cancelled.append(target.id)
            raise
        finally:
            self.in_flight -= 1
        return [
            RawRow(database_id="ignored", table=table, data=dict(data))
            for table, data in self.rows.get(target.id, [])
        ][offset : offset + limit]


class FakeEnhancementService(SemanticEnhancementService):
    def __init__(
        self,
        result: dict[str, Any] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.result = result or {}
        self.error = error
        self.delay = delay
        self.calls: list[str] = []
        self.closed = False

    async def rewrite(self, text: str) -> dict[str, Any]:
        self.calls.append(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return dict(self.result)

    async def close(self) -> None:
        self.closed = True


class BrokenCacheStore(CacheStore):
    """Every operation fails, as an unreachable cache server would."""

    def __init__(self):
        self.get_calls = 0
        self.set_calls = 0

    async def get(self, key: str) -> Any | None:
        self.get_calls += 1
        raise ConnectionError("cache down")

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.set_calls += 1
        raise ConnectionError("cache down")


class ManualClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests that require a live MySQL server.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers", "integration: requires runtime services or user configuration"
    )
    config.addinivalue_line("markers", "property: property-based deterministic tests")


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: Sequence[pytest.Item],
) -> None:
    run_integration = config.getoption("--run-integration")
    skip_integration = pytest.mark.skip(
        reason="integration is opt-in; rerun with --run-integration"
    )

    for item in items:
        if "tests/integration/" in item.nodeid:
            item.add_marker("integration")
        if item.get_closest_marker("integration") and not run_integration:
            item.add_marker(skip_integration)

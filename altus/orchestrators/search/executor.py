"""Database fan-out executor: one full-text query per target, run concurrently.

Each target is queried independently under a shared concurrency cap and its
own timeout. A target that errors or times out is logged and left out; it
never fails its siblings. Cancelling the caller cancels every sub-task.
"""

import asyncio
import time
from dataclasses import dataclass, field

from altus.contracts.search_v1 import DatabaseTarget, RawRow, SearchMode, TableTarget
from altus.core.logger import logger
from altus.observability import traceable
from altus.orchestrators.search.errors import AltusError, BackendError, BackendTimeout
from altus.orchestrators.search.interface import FullTextBackend
from altus.orchestrators.search.outcomes import Outcome


@dataclass(frozen=True)
class DatabaseFailure:
    database_id: str
    code: str
    message: str
    elapsed_ms: float


@dataclass
class FanOutResult:
    """Rows from every successful target (in target order) plus per-target diagnostics."""

    rows: list[RawRow] = field(default_factory=list)
    failures: list[DatabaseFailure] = field(default_factory=list)
    timings_ms: dict[str, float] = field(default_factory=dict)
    attempted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def failed_ids(self) -> list[str]:
        return [f.database_id for f in self.failures]

    @property
    def all_failed(self) -> bool:
        return bool(self.attempted) and len(self.failures) == len(self.attempted)


def plan_tables(
    target: DatabaseTarget, tables: list[str], columns: list[str]
) -> list[TableTarget]:
    """Tables (and their full-text columns) of ``target`` that the request may search."""
    wanted_tables = set(tables)
    wanted_columns = set(columns)
    planned: list[TableTarget] = []
    for table in target.tables:
        if wanted_tables and table.name not in wanted_tables:
            continue
        cols = [
            c for c in table.fulltext_columns if not wanted_columns or c in wanted_columns
        ]
        if not cols:
            continue
        planned.append(table.model_copy(update={"fulltext_columns": cols}))
    return planned


class DatabaseFanOutExecutor:
    """Runs a query against many databases in parallel and collects what succeeds."""

    def __init__(
        self,
        backend: FullTextBackend,
        max_concurrency: int = 10,
        timeout: float = 1.0,
    ):
        self._backend = backend
        self._max_concurrency = max(1, max_concurrency)
        self._timeout = timeout

    @traceable(name="search_fan_out", run_type="retriever")
    async def execute_all(
        self,
        targets: list[DatabaseTarget],
        query: str,
        tables: list[str] | None = None,
        columns: list[str] | None = None,
        mode: SearchMode = SearchMode.NATURAL,
        limit: int = 20,
        offset: int = 0,
        timeout: float | None = None,
    ) -> FanOutResult:
        """Query every target concurrently.

        Each database is asked for its best ``limit + offset`` rows so the
        merged list can be paginated globally afterwards.
        """
        result = FanOutResult()
        per_target_timeout = timeout if timeout is not None else self._timeout
        fetch_limit = limit + offset

        planned: list[tuple[DatabaseTarget, list[TableTarget]]] = []
        for target in targets:
            plan = plan_tables(target, tables or [], columns or [])
            if not plan:
                logger.debug("Fan-out: %s has nothing searchable for this request", target.id)
                result.skipped.append(target.id)
                continue
            planned.append((target, plan))
            result.attempted.append(target.id)

        if not planned:
            return result

        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(
            *(
                self._execute_one(semaphore, target, plan, query, mode, fetch_limit, per_target_timeout)
                for target, plan in planned
            ),
            return_exceptions=True,
        )

        for (target, _), outcome in zip(planned, outcomes):
            if isinstance(outcome, BaseException):
                # _execute_one converts ordinary errors itself; anything here is unexpected.
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                failure = DatabaseFailure(target.id, "INTERNAL_ERROR", str(outcome), 0.0)
                result.failures.append(failure)
                logger.backend_failed(target.id, str(outcome), 0.0)
                continue
            fetched, elapsed_ms = outcome
            result.timings_ms[target.id] = elapsed_ms
            if fetched.is_fatal:
                error: AltusError = fetched.error
                result.failures.append(DatabaseFailure(target.id, error.code, error.message, elapsed_ms))
                continue
            result.rows.extend(fetched.value or [])

        logger.info(
            "Fan-out: %s databases queried, %s failed, %s rows",
            len(result.attempted),
            len(result.failures),
            len(result.rows),
        )
        return result

    async def _execute_one(
        self,
        semaphore: asyncio.Semaphore,
        target: DatabaseTarget,
        plan: list[TableTarget],
        query: str,
        mode: SearchMode,
        limit: int,
        timeout: float,
    ) -> tuple[Outcome[list[RawRow]], float]:
        async with semaphore:
            t0 = time.monotonic()
            try:
                raw = await asyncio.wait_for(
                    self._backend.query(target, query, plan, mode, limit, 0),
                    timeout=timeout,
                )
            except TimeoutError:
                elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
                logger.backend_failed(target.id, f"timed out after {timeout}s", elapsed_ms)
                error = BackendTimeout("timeout", {"timeout_seconds": timeout})
                return Outcome.fatal(error), elapsed_ms
            except AltusError as e:
                elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
                logger.backend_failed(target.id, f"{e.code}: {e.message}", elapsed_ms)
                return Outcome.fatal(e), elapsed_ms
            except Exception as e:
                elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
                logger.backend_failed(target.id, str(e), elapsed_ms)
                return Outcome.fatal(BackendError(str(e))), elapsed_ms

        elapsed_ms = round((time.monotonic() - t0) * 1000, 1)
        rows = [
            RawRow(
                database_id=target.id,
                table=row.table,
                data=dict(row.data),
                backend_rank=rank,
                backend_score=row.backend_score,
            )
            for rank, row in enumerate(raw[:limit])
        ]
        logger.debug("Fan-out: %s returned %s rows in %.1fms", target.id, len(rows), elapsed_ms)
        return Outcome.ok(rows), elapsed_ms

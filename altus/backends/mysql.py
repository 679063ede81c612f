"""MySQL full-text backend.

Runs ``MATCH ... AGAINST`` per table through the target's SQLAlchemy
``AsyncEngine``. The engine (and its pool) is owned by whoever built the
DatabaseTarget; this backend only borrows a connection per query.
"""

import re
from typing import Any

from sqlalchemy import exc as sa_exc
from sqlalchemy import text as sql_text

from altus.contracts.search_v1 import DatabaseTarget, RawRow, SearchMode, TableTarget
from altus.core.logger import logger
from altus.orchestrators.search.errors import BackendConnectionError, QueryError
from altus.orchestrators.search.interface import FullTextBackend

RELEVANCE_COLUMN = "_altus_relevance"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_$]{1,64}$")


def quote_identifier(name: str) -> str:
    """Back-quote a table/column name after checking it is a plain identifier."""
    if not _IDENTIFIER_RE.match(name or ""):
        raise QueryError(f"Invalid identifier: {name!r}", {"identifier": name})
    return f"`{name}`"


def build_statement(table: TableTarget, mode: SearchMode) -> str:
    """SELECT for one table; the query text, limit and offset are bound parameters."""
    if not table.fulltext_columns:
        raise QueryError(f"Table {table.name!r} has no full-text columns")
    columns = ", ".join(quote_identifier(c) for c in table.fulltext_columns)
    modifier = "IN BOOLEAN MODE" if mode == SearchMode.BOOLEAN else "IN NATURAL LANGUAGE MODE"
    match = f"MATCH({columns}) AGAINST(:query {modifier})"
    return (
        f"SELECT *, {match} AS {RELEVANCE_COLUMN} "
        f"FROM {quote_identifier(table.name)} "
        f"WHERE {match} "
        f"ORDER BY {RELEVANCE_COLUMN} DESC "
        f"LIMIT :limit OFFSET :offset"
    )


class MySQLFullTextBackend(FullTextBackend):
    """Natural-language and boolean full-text search over MySQL/MariaDB."""

    async def query(
        self,
        target: DatabaseTarget,
        text: str,
        tables: list[TableTarget],
        mode: SearchMode,
        limit: int,
        offset: int = 0,
    ) -> list[RawRow]:
        engine = target.connection
        if engine is None:
            raise BackendConnectionError(f"Database {target.id!r} has no connection")

        statements = [(table, build_statement(table, mode)) for table in tables]
        params = {"query": text, "limit": limit, "offset": offset}
        collected: list[tuple[float, int, int, str, dict[str, Any]]] = []

        try:
            async with engine.connect() as conn:
                for table_idx, (table, sql) in enumerate(statements):
                    result = await conn.execute(sql_text(sql), params)
                    for row_idx, row in enumerate(result.mappings()):
                        data = dict(row)
                        score = data.pop(RELEVANCE_COLUMN, None)
                        collected.append(
                            (float(score or 0.0), table_idx, row_idx, table.name, data)
                        )
        except (sa_exc.OperationalError, sa_exc.InterfaceError) as e:
            raise BackendConnectionError(
                f"Connection to {target.id!r} failed: {e.orig or e}", {"database": target.id}
            ) from e
        except sa_exc.SQLAlchemyError as e:
            raise QueryError(
                f"Full-text query on {target.id!r} failed: {e}", {"database": target.id}
            ) from e
        except OSError as e:
            raise BackendConnectionError(
                f"Connection to {target.id!r} failed: {e}", {"database": target.id}
            ) from e

        collected.sort(key=lambda item: (-item[0], item[1], item[2]))
        rows = [
            RawRow(
                database_id=target.id,
                table=table_name,
                data=data,
                backend_rank=rank,
                backend_score=score,
            )
            for rank, (score, _, _, table_name, data) in enumerate(collected[:limit])
        ]
        logger.debug(
            "MySQL %s: %s tables, %s rows (%s)", target.id, len(tables), len(rows), mode
        )
        return rows

"""Result aggregator: merges per-database rows into one ranked, paginated response.

Ordering is fully deterministic for fixed input: score descending, then the
row's rank within its own database, then database id, then table.
"""

import re
from collections import Counter
from collections.abc import Mapping
from typing import Any

from altus.contracts.search_v1 import (
    Category,
    QuerySuggestion,
    RawRow,
    SearchMode,
    SearchResponse,
    SearchResult,
    SuggestionType,
)
from altus.core.logger import logger
from altus.orchestrators.search.constants import CATEGORY_FIELDS
from altus.orchestrators.search.scoring import (
    extract_snippet,
    score_row,
    textual_columns,
    tokenize,
)

_WORD_RE = re.compile(r"[a-z][a-z0-9]+")

STOP_WORDS = frozenset(
    """
    a about above after again all also am an and any are as at be because been
    before being below between both but by can did do does doing down during
    each few for from further had has have having he her here hers him his how
    i if in into is it its itself just me more most my no nor not now of off on
    once only or other our ours out over own same she should so some such than
    that the their theirs them then there these they this those through to too
    under until up very was we were what when where which while who whom why
    will with you your yours
    """.split()
)


def portable_value(value: Any) -> Any:
    """Binary column values as text: UTF-8 when they decode, hex otherwise."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return raw.hex()
    return value


def row_categories(data: Mapping[str, Any]) -> list[str]:
    """Categories carried by the row itself (``category`` / ``categories``)."""
    found: list[str] = []
    for key in CATEGORY_FIELDS:
        value = data.get(key)
        if isinstance(value, str):
            values = [v.strip() for v in value.split(",")]
        elif isinstance(value, (list, tuple)):
            values = [str(v).strip() for v in value if v is not None]
        else:
            continue
        for v in values:
            if v and v not in found:
                found.append(v)
    return found


def summarize_categories(results: list[SearchResult]) -> list[Category]:
    """Frequency count over result categories; confidence is the share of results."""
    if not results:
        return []
    counts = Counter(c for r in results for c in r.categories)
    total = len(results)
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return [
        Category(name=name, count=count, confidence=round(count / total, 4))
        for name, count in ordered
    ]


def suggest_terms(
    results: list[SearchResult], query: str, top_n: int = 5
) -> list[QuerySuggestion]:
    """Most frequent result terms that the query does not already contain."""
    if top_n <= 0 or not results:
        return []
    query_terms = set(tokenize(query))
    counts: Counter[str] = Counter()
    for r in results:
        for _, text in textual_columns(r.data):
            for word in _WORD_RE.findall(text.lower()):
                if len(word) < 3 or word in STOP_WORDS or word in query_terms:
                    continue
                counts[word] += 1
    if not counts:
        return []
    top = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
    max_count = top[0][1]
    return [
        QuerySuggestion(
            text=word,
            score=round(count / max_count, 4),
            type=SuggestionType.POPULAR,
        )
        for word, count in top
    ]


class ResultAggregator:
    """Scores, orders, paginates and summarizes rows from every database."""

    def __init__(self, suggestion_count: int = 5):
        self._suggestion_count = suggestion_count

    def score(
        self,
        rows: list[RawRow],
        query: str,
        mode: SearchMode = SearchMode.NATURAL,
        title_columns: Mapping[tuple[str, str], str] | None = None,
    ) -> list[SearchResult]:
        """Score every row and return them in final order (unsliced)."""
        backend_confirmed = mode != SearchMode.NATURAL
        title_columns = title_columns or {}
        scored: list[tuple[tuple[float, int, str, str], SearchResult]] = []
        for row in rows:
            title_column = title_columns.get((row.database_id, row.table))
            data = {column: portable_value(value) for column, value in row.data.items()}
            rs = score_row(
                data,
                query,
                title_column=title_column,
                backend_confirmed=backend_confirmed,
            )
            result = SearchResult(
                id=f"{row.database_id}_{row.table}_{row.backend_rank}",
                database=row.database_id,
                table=row.table,
                relevance_score=round(rs.score, 6),
                matched_columns=rs.matched_columns,
                data=data,
                snippet=extract_snippet(data, query, title_column=title_column),
                categories=row_categories(data),
            )
            key = (-result.relevance_score, row.backend_rank, row.database_id, row.table)
            scored.append((key, result))
        scored.sort(key=lambda pair: pair[0])
        return [r for _, r in scored]

    def aggregate(
        self,
        rows: list[RawRow],
        query: str,
        limit: int,
        offset: int = 0,
        mode: SearchMode = SearchMode.NATURAL,
        title_columns: Mapping[tuple[str, str], str] | None = None,
        extra_suggestions: list[QuerySuggestion] | None = None,
    ) -> SearchResponse:
        """Merge rows into a SearchResponse page.

        Args:
            rows: Rows from all databases, in target order.
            query: The caller's query; scoring always uses the raw text.
            limit: Page size.
            offset: Rows to skip after ordering.
            mode: Search mode; non-natural modes floor zero-overlap scores.
            title_columns: Optional (database, table) -> title column overrides.
            extra_suggestions: Suggestions placed ahead of the term suggestions.

        Returns:
            Response with results, total_count (pre-slice), categories and suggestions.
        """
        ordered = self.score(rows, query, mode=mode, title_columns=title_columns)
        page = ordered[offset : offset + limit]
        suggestions = list(extra_suggestions or [])
        suggestions.extend(suggest_terms(ordered, query, self._suggestion_count))

        logger.debug(
            "Aggregate: %s rows -> page of %s (offset=%s limit=%s)",
            len(rows),
            len(page),
            offset,
            limit,
        )

        return SearchResponse(
            results=page,
            total_count=len(ordered),
            categories=summarize_categories(ordered),
            suggestions=suggestions,
            page=offset // limit + 1,
            limit=limit,
        )

"""Query optimization hints derived from the request, the targets and fan-out timings."""

from altus.contracts.search_v1 import (
    DatabaseTarget,
    Impact,
    OptimizationSuggestion,
    OptimizationType,
    SearchMode,
    SearchRequest,
)
from altus.orchestrators.search.executor import FanOutResult
from altus.orchestrators.search.scoring import tokenize

# InnoDB ignores full-text terms shorter than innodb_ft_min_token_size (default 3).
MIN_TOKEN_SIZE = 3


def _quote(identifier: str) -> str:
    return "`" + identifier.replace("`", "``") + "`"


def suggest_optimizations(
    request: SearchRequest,
    targets: list[DatabaseTarget],
    fan_out: FanOutResult,
    slow_database_ms: float = 1000.0,
) -> list[OptimizationSuggestion]:
    suggestions: list[OptimizationSuggestion] = []
    wanted_tables = set(request.tables)

    for target in targets:
        for table in target.tables:
            if wanted_tables and table.name not in wanted_tables:
                continue
            if not table.fulltext_columns:
                suggestions.append(
                    OptimizationSuggestion(
                        type=OptimizationType.SCHEMA,
                        description=(
                            f"Table '{table.name}' in database '{target.id}' has no "
                            "full-text indexed columns and cannot be searched"
                        ),
                        impact=Impact.HIGH,
                    )
                )
                continue
            unindexed = [c for c in request.columns if c not in table.fulltext_columns]
            if request.columns and unindexed:
                index_name = f"ft_{table.name}_{'_'.join(unindexed)}"[:64]
                cols = ", ".join(_quote(c) for c in unindexed)
                suggestions.append(
                    OptimizationSuggestion(
                        type=OptimizationType.INDEX,
                        description=(
                            f"Columns {', '.join(unindexed)} of '{table.name}' "
                            f"({target.id}) are not full-text indexed and were skipped"
                        ),
                        impact=Impact.MEDIUM,
                        sql_suggestion=(
                            f"ALTER TABLE {_quote(table.name)} "
                            f"ADD FULLTEXT INDEX {_quote(index_name)} ({cols});"
                        ),
                    )
                )

    for database_id, elapsed_ms in sorted(fan_out.timings_ms.items()):
        if elapsed_ms > slow_database_ms:
            suggestions.append(
                OptimizationSuggestion(
                    type=OptimizationType.QUERY,
                    description=(
                        f"Database '{database_id}' took {elapsed_ms:.0f}ms; narrow the "
                        "search with tables/columns or a more selective query"
                    ),
                    impact=Impact.HIGH,
                )
            )

    if request.mode == SearchMode.NATURAL:
        short = [t for t in tokenize(request.query) if len(t) < MIN_TOKEN_SIZE]
        if short:
            suggestions.append(
                OptimizationSuggestion(
                    type=OptimizationType.QUERY,
                    description=(
                        f"Terms shorter than {MIN_TOKEN_SIZE} characters are ignored by "
                        f"the full-text index: {', '.join(short)}"
                    ),
                    impact=Impact.LOW,
                )
            )

    return suggestions

from __future__ import annotations

import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from altus.contracts.search_v1 import QuerySuggestion, RawRow, SearchMode, SuggestionType
from altus.orchestrators.search.aggregator import (
    ResultAggregator,
    row_categories,
    suggest_terms,
    summarize_categories,
)


def _row(db: str, table: str, rank: int, **data) -> RawRow:
    return RawRow(database_id=db, table=table, data=data, backend_rank=rank)


def test_results_are_ordered_by_score_then_rank_then_database():
    rows = [
        _row("db2", "posts", 0, content="mysql"),
        _row("db1", "posts", 1, content="mysql"),
        _row("db1", "posts", 0, content="mysql"),
        _row("db3", "posts", 0, title="MySQL Performance"),
    ]

    results = ResultAggregator().score(rows, "mysql performance")

    assert [r.id for r in results] == [
        "db3_posts_0",
        "db1_posts_0",
        "db2_posts_0",
        "db1_posts_1",
    ]


@pytest.mark.property
@given(seed=st.integers(min_value=0, max_value=10_000))
def test_ordering_is_independent_of_arrival_order(seed):
    rows = [
        _row(f"db{i % 3}", f"t{i % 2}", i // 3, content=f"mysql {'performance' if i % 4 else ''} {i}")
        for i in range(12)
    ]
    shuffled = list(rows)
    random.Random(seed).shuffle(shuffled)
    agg = ResultAggregator()

    expected = [r.id for r in agg.score(rows, "mysql performance")]
    actual = [r.id for r in agg.score(shuffled, "mysql performance")]

    assert actual == expected


def test_pagination_slices_after_ordering_and_counts_everything():
    rows = [_row("db1", "posts", i, content=f"mysql item {i}") for i in range(25)]

    response = ResultAggregator().aggregate(rows, "mysql", limit=10, offset=20)

    assert response.total_count == 25
    assert len(response.results) == 5
    assert response.page == 3
    assert response.limit == 10
    assert [r.id for r in response.results][0] == "db1_posts_20"


def test_boolean_mode_keeps_backend_matches_with_floor_score():
    rows = [_row("db1", "posts", 0, content="unrelated text")]
    response = ResultAggregator().aggregate(rows, "+mysql", limit=10, mode=SearchMode.BOOLEAN)
    assert response.results[0].relevance_score == pytest.approx(0.1)


def test_categories_are_counted_with_share_confidence():
    rows = [
        _row("db1", "posts", 0, content="mysql", category="databases"),
        _row("db1", "posts", 1, content="mysql", categories=["databases", "tuning"]),
        _row("db1", "posts", 2, content="mysql"),
        _row("db1", "posts", 3, content="mysql", categories="tuning, ops"),
    ]

    categories = ResultAggregator().aggregate(rows, "mysql", limit=2).categories

    assert [(c.name, c.count) for c in categories] == [
        ("databases", 2),
        ("tuning", 2),
        ("ops", 1),
    ]
    assert categories[0].confidence == pytest.approx(0.5)


def test_row_categories_reads_strings_and_lists():
    assert row_categories({"category": "a, b", "categories": ["b", "c", None]}) == ["a", "b", "c"]
    assert row_categories({"category": 3}) == []


def test_summarize_categories_empty():
    assert summarize_categories([]) == []


def test_term_suggestions_skip_query_terms_and_stop_words():
    rows = [
        _row("db1", "posts", 0, content="mysql indexing and replication"),
        _row("db1", "posts", 1, content="mysql indexing for the win"),
    ]
    results = ResultAggregator().score(rows, "mysql")

    suggestions = suggest_terms(results, "mysql", top_n=2)

    assert [s.text for s in suggestions] == ["indexing", "replication"]
    assert suggestions[0].score == pytest.approx(1.0)
    assert suggestions[1].score == pytest.approx(0.5)
    assert all(s.type == SuggestionType.POPULAR for s in suggestions)


def test_extra_suggestions_come_first():
    semantic = QuerySuggestion(text="mysql tuning", score=0.9, type=SuggestionType.SEMANTIC)
    rows = [_row("db1", "posts", 0, content="mysql indexing")]

    response = ResultAggregator().aggregate(rows, "mysql", limit=5, extra_suggestions=[semantic])

    assert response.suggestions[0] == semantic


def test_empty_input_gives_empty_page():
    response = ResultAggregator().aggregate([], "mysql", limit=20)
    assert response.results == []
    assert response.total_count == 0
    assert response.page == 1


def test_binary_values_become_text():
    rows = [_row("db1", "files", 0, id=b"\xff\xfe\x00\x01", title=b"MySQL Performance")]

    (result,) = ResultAggregator().score(rows, "mysql")

    assert result.data == {"id": "fffe0001", "title": "MySQL Performance"}
    assert result.matched_columns == ["title"]

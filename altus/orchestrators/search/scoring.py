"""Relevance scoring and snippet extraction for backend rows.

Pure functions, no I/O. Rows are arbitrary string-keyed maps; every string
value is treated as a textual column. Query and column text are split into
the same word tokens, so terms only match whole words.

Column score = matched terms / total terms
             + PHRASE_BONUS when the query's words appear consecutively
             x TITLE_MULTIPLIER for title-like columns
Row score    = best column score, clamped to [0, 1]
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from altus.orchestrators.search.constants import (
    BACKEND_CONFIRMED_FLOOR,
    BOOLEAN_KEYWORDS,
    PHRASE_BONUS,
    SNIPPET_LENGTH,
    TITLE_LIKE_COLUMNS,
    TITLE_MULTIPLIER,
)

# Boolean-mode operators (+ - " ( ) * ~ < > @) are not word characters, so
# they fall away here.
_WORD_RE = re.compile(r"\w+")


@dataclass(frozen=True)
class RowScore:
    score: float
    matched_columns: list[str] = field(default_factory=list)


def words(text: str) -> list[str]:
    """Lower-cased word tokens of ``text``, in order, repeats kept."""
    return _WORD_RE.findall(text.lower())


def tokenize(query: str) -> list[str]:
    """Lower-cased, de-duplicated query terms without boolean keywords."""
    terms: list[str] = []
    for term in words(query):
        if term in BOOLEAN_KEYWORDS or term in terms:
            continue
        terms.append(term)
    return terms


def _contains_sequence(haystack: list[str], needle: list[str]) -> bool:
    if not needle or len(needle) > len(haystack):
        return False
    first = needle[0]
    span = len(needle)
    return any(
        haystack[i : i + span] == needle
        for i in range(len(haystack) - span + 1)
        if haystack[i] == first
    )


def contains_phrase(text: str, query: str) -> bool:
    """True when every word of ``query`` appears in ``text`` consecutively and in order."""
    return _contains_sequence(words(text), words(query))


def textual_columns(data: Mapping[str, Any]) -> list[tuple[str, str]]:
    """(column, text) pairs for non-empty string values, in row order."""
    return [
        (column, value)
        for column, value in data.items()
        if isinstance(value, str) and value.strip()
    ]


def is_title_column(column: str, title_column: str | None = None) -> bool:
    if title_column is not None and column == title_column:
        return True
    return column.lower() in TITLE_LIKE_COLUMNS


def score_row(
    data: Mapping[str, Any],
    query: str,
    *,
    title_column: str | None = None,
    backend_confirmed: bool = False,
) -> RowScore:
    """Score one row against ``query``.

    Rows sharing no term with the query score 0.0, or BACKEND_CONFIRMED_FLOOR
    when ``backend_confirmed`` is set (boolean/semantic matches the backend
    vouched for even though the raw terms do not appear).
    """
    terms = tokenize(query)
    if not terms:
        return RowScore(BACKEND_CONFIRMED_FLOOR if backend_confirmed else 0.0)

    phrase = words(query)
    best = 0.0
    matched_columns: list[str] = []
    for column, text in textual_columns(data):
        column_words = words(text)
        present = set(column_words)
        matched = sum(1 for t in terms if t in present)
        if not matched:
            continue
        matched_columns.append(column)
        column_score = matched / len(terms)
        if _contains_sequence(column_words, phrase):
            column_score += PHRASE_BONUS
        if is_title_column(column, title_column):
            column_score *= TITLE_MULTIPLIER
        best = max(best, column_score)

    if not matched_columns:
        return RowScore(BACKEND_CONFIRMED_FLOOR if backend_confirmed else 0.0)
    return RowScore(min(1.0, max(0.0, best)), matched_columns)


def _window(text: str, position: int, width: int) -> str:
    start = max(0, position - width // 2)
    end = min(len(text), start + width)
    start = max(0, end - width)
    snippet = text[start:end].strip()
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def extract_snippet(
    data: Mapping[str, Any],
    query: str,
    *,
    title_column: str | None = None,
    length: int = SNIPPET_LENGTH,
) -> str:
    """Window of ``length`` chars around the first query term in the longest text column."""
    columns = textual_columns(data)
    if not columns:
        return ""

    _, longest = max(columns, key=lambda pair: len(pair[1]))
    hits = [
        match
        for term in tokenize(query)
        if (match := re.search(rf"\b{re.escape(term)}\b", longest, re.IGNORECASE))
    ]
    if hits:
        first = min(hits, key=lambda m: m.start())
        return _window(longest, (first.start() + first.end()) // 2, length)

    for column, text in columns:
        if is_title_column(column, title_column):
            return text
    _, first = columns[0]
    if len(first) <= length:
        return first
    return first[:length].rstrip() + "..."

"""Search Contract v1.

Defines the canonical types for:
  - The search request accepted from callers (SearchRequest)
  - Federation targets supplied by the connection provider (DatabaseTarget, TableTarget)
  - Rows flowing from backends to the aggregator (RawRow)
  - The response payload (SearchResult, SearchResponse and its summaries)

Field aliases follow the camelCase names of the public HTTP API so a request
body can be validated directly with ``SearchRequest.model_validate(body)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_QUERY_LENGTH = 500
MAX_LIMIT = 100
DEFAULT_LIMIT = 20
# Largest limit+offset a caller may page to; bounds per-database fetch size.
MAX_RESULT_WINDOW = 1000


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class SearchMode(StrEnum):
    NATURAL = "natural"
    BOOLEAN = "boolean"
    SEMANTIC = "semantic"


class RateLimitTier(StrEnum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SuggestionType(StrEnum):
    SPELLING = "spelling"
    SEMANTIC = "semantic"
    POPULAR = "popular"


class OptimizationType(StrEnum):
    INDEX = "index"
    QUERY = "query"
    SCHEMA = "schema"


class Impact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Period(StrEnum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    THREE_MONTHS = "3months"
    SIX_MONTHS = "6months"
    YEAR = "year"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """One logical search, validated before any I/O."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    query: str = Field(min_length=1, max_length=MAX_QUERY_LENGTH)
    database_ids: list[str] = Field(
        default_factory=list,
        alias="databases",
        description="Target database ids; empty means every database the caller owns",
    )
    tables: list[str] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)
    mode: SearchMode = Field(default=SearchMode.NATURAL, alias="searchMode")
    limit: int = Field(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT)
    offset: int = Field(default=0, ge=0)
    caller_id: str = Field(default="anonymous", alias="userId", min_length=1)
    include_analytics: bool = Field(default=False, alias="includeAnalytics")

    @field_validator("query", mode="before")
    @classmethod
    def _strip_query(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("database_ids", "tables", "columns", mode="after")
    @classmethod
    def _dedupe_ordered(cls, v: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for item in v:
            item = item.strip()
            if item:
                seen.setdefault(item, None)
        return list(seen)

    @model_validator(mode="after")
    def _bounded_window(self) -> SearchRequest:
        if self.limit + self.offset > MAX_RESULT_WINDOW:
            raise ValueError(
                f"limit + offset must not exceed {MAX_RESULT_WINDOW} "
                f"(got {self.limit} + {self.offset})"
            )
        return self


class Credential(BaseModel):
    """Identity the rate limiter keys on (an API key id) and its tier."""

    model_config = ConfigDict(frozen=True)

    key_id: str = Field(min_length=1)
    tier: RateLimitTier = RateLimitTier.FREE


# ---------------------------------------------------------------------------
# Federation targets and rows
# ---------------------------------------------------------------------------


class TableTarget(BaseModel):
    """A searchable table and its full-text indexed columns."""

    model_config = ConfigDict(frozen=True)

    name: str
    fulltext_columns: list[str] = Field(default_factory=list)
    title_column: str | None = Field(
        default=None,
        description="Column weighted as the row's title when scoring; inferred when absent",
    )


class DatabaseTarget(BaseModel):
    """A caller-owned database. The connection handle belongs to the pool owner."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: str
    name: str = ""
    connection: Any = Field(default=None, exclude=True)
    tables: list[TableTarget] = Field(default_factory=list)


@dataclass(frozen=True)
class RawRow:
    """Backend record tagged with its origin. Discarded after scoring."""

    database_id: str
    table: str
    data: dict[str, Any] = field(default_factory=dict)
    backend_rank: int = 0
    backend_score: float | None = None


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------


class _ResponseModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, frozen=True, serialize_by_alias=True, ser_json_bytes="base64"
    )


class SearchResult(_ResponseModel):
    id: str
    database: str
    table: str
    relevance_score: float = Field(ge=0.0, le=1.0, alias="relevanceScore")
    matched_columns: list[str] = Field(default_factory=list, alias="matchedColumns")
    data: dict[str, Any] = Field(default_factory=dict)
    snippet: str = ""
    categories: list[str] = Field(default_factory=list)


class Category(_ResponseModel):
    name: str
    count: int
    confidence: float


class QuerySuggestion(_ResponseModel):
    text: str
    score: float
    type: SuggestionType


class TrendInsight(_ResponseModel):
    period: Period
    top_queries: list[str] = Field(default_factory=list, alias="topQueries")
    query_volume: int = Field(default=0, alias="queryVolume")
    avg_response_time: float = Field(default=0.0, alias="avgResponseTime")
    popular_categories: list[str] = Field(default_factory=list, alias="popularCategories")


class OptimizationSuggestion(_ResponseModel):
    type: OptimizationType
    description: str
    impact: Impact
    sql_suggestion: str | None = Field(default=None, alias="sqlSuggestion")


class SearchResponse(_ResponseModel):
    """Final response from the search orchestrator. Cached as a whole."""

    results: list[SearchResult] = Field(default_factory=list)
    total_count: int = Field(default=0, alias="totalCount")
    execution_time_ms: float = Field(default=0.0, alias="executionTime")
    categories: list[Category] = Field(default_factory=list)
    suggestions: list[QuerySuggestion] = Field(default_factory=list)
    trends: list[TrendInsight] | None = None
    query_optimization: list[OptimizationSuggestion] = Field(
        default_factory=list, alias="queryOptimization"
    )
    page: int = 1
    limit: int = DEFAULT_LIMIT
    cached: bool = False
    failed_databases: list[str] = Field(
        default_factory=list,
        alias="failedDatabases",
        description="Databases excluded after an error or timeout",
    )


class AnalyticsEvent(BaseModel):
    """One completed search, as recorded by the analytics sink."""

    caller_id: str
    query: str
    mode: SearchMode
    result_count: int
    execution_time_ms: float
    cached: bool = False
    databases: list[str] = Field(default_factory=list)
    failed_databases: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    timestamp: datetime

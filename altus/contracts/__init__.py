"""Versioned data contracts shared by the orchestrator, backends and HTTP surface."""

from altus.contracts.search_v1 import (
    Credential,
    DatabaseTarget,
    RawRow,
    SearchMode,
    SearchRequest,
    SearchResponse,
    SearchResult,
    TableTarget,
)

__all__ = [
    "Credential",
    "DatabaseTarget",
    "RawRow",
    "SearchMode",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "TableTarget",
]

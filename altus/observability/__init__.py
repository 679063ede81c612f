"""Observability: LangSmith tracing (optional, env-controlled)."""

from altus.observability.langsmith import (
    flush,
    trace,
    traceable,
)

__all__ = ["trace", "traceable", "flush"]

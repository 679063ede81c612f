"""Orchestrators: multi-stage request pipelines (e.g. federated search)."""

from altus.orchestrators.search import SearchOrchestrator

__all__ = ["SearchOrchestrator"]

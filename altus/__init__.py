"""Altus: federated full-text search across a caller's relational databases."""

__version__ = "0.3.0"

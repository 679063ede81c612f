"""Caller-facing surfaces."""

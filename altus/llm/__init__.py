"""LLM-backed collaborators."""

"""Full-text backends."""

from altus.backends.mysql import MySQLFullTextBackend

__all__ = ["MySQLFullTextBackend"]

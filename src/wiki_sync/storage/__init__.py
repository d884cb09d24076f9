"""Document storage: the store protocol and its SQLite implementation."""

from .base import DocumentStore
from .sqlite import SqliteStore

__all__ = ["DocumentStore", "SqliteStore"]

"""Expose constructed client wrappers."""

from .base import ConditionalWriteError, TokenStore
from .dynamodb import DynamoDBClient
from .sqlite_store import SQLiteStore

__all__ = [
    "ConditionalWriteError",
    "DynamoDBClient",
    "SQLiteStore",
    "TokenStore",
]

"""Database executor adapters.

Usage:
    from db_snapshot.adapters import DatabaseClient, AsyncSqlAdapter
"""

from db_snapshot.adapters.base import DatabaseClient
from db_snapshot.adapters.sql import AsyncSqlAdapter, split_batches

__all__ = [
    "DatabaseClient",
    "AsyncSqlAdapter",
    "split_batches",
]

"""SQLite storage implementation."""

from watchcraft.infrastructure.storage.sqlite.connection import ConnectionPool
from watchcraft.infrastructure.storage.sqlite.migrations import run_migrations
from watchcraft.infrastructure.storage.sqlite.repository import SQLiteRepository

__all__ = [
    "ConnectionPool",
    "SQLiteRepository",
    "run_migrations",
]

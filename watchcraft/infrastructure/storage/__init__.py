"""Storage infrastructure implementations."""

from watchcraft.infrastructure.storage.memory import MemoryRepository
from watchcraft.infrastructure.storage.sqlite import (
    ConnectionPool,
    SQLiteRepository,
    run_migrations,
)

__all__ = [
    "MemoryRepository",
    "SQLiteRepository",
    "ConnectionPool",
    "run_migrations",
]

"""In-memory storage backend."""

from watchcraft.infrastructure.storage.memory.repository import MemoryRepository

__all__ = ["MemoryRepository"]

"""Abstract interface for entity caching."""

from abc import abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from watchcraft.core.interfaces.lifecycle import Closeable
from watchcraft.core.interfaces.repository import EntityType

T = TypeVar("T")


class IEntityCache(Closeable):
    """
    Read-through, per-entity, time-boxed cache.

    Writes never update entries; they drop the whole entity collection.
    """

    @abstractmethod
    def get(self, entity: EntityType, key: str) -> Any | None:
        """Cached value, or None if absent or expired."""
        pass

    @abstractmethod
    def set(self, entity: EntityType, key: str, value: Any) -> None:
        """Cache a value under the entity's TTL."""
        pass

    @abstractmethod
    async def get_or_load(
        self, entity: EntityType, key: str, loader: Callable[[], Awaitable[T]]
    ) -> T:
        """Return the cached value or load, cache and return it."""
        pass

    @abstractmethod
    def invalidate_all(self, entity: EntityType) -> None:
        """Drop every cached entry of one entity collection."""
        pass

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        pass

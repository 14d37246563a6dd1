"""
Per-entity TTL cache.

Entries are grouped by entity collection. Invalidation is whole-collection:
any write to an entity drops every cached read of it, which keeps list and
aggregate reads correct without tracking which keys a write affects.
"""

import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from watchcraft.config import get_logger
from watchcraft.config.settings import CacheSettings
from watchcraft.core.interfaces.cache import IEntityCache
from watchcraft.core.interfaces.repository import EntityType

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 300


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float


class EntityCache(IEntityCache):
    """In-process cache keyed by (entity, key)."""

    def __init__(
        self,
        ttls: Mapping[EntityType, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ) -> None:
        self._ttls = dict(ttls or {})
        self._clock = clock
        self._enabled = enabled
        self._entries: dict[EntityType, dict[str, CacheEntry]] = {e: {} for e in EntityType}
        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings, **kwargs: Any) -> "EntityCache":
        """Build a cache using the configured per-entity TTLs."""
        ttls = {entity: settings.ttl_for(entity.value) for entity in EntityType}
        return cls(ttls=ttls, enabled=settings.enabled, **kwargs)

    def ttl(self, entity: EntityType) -> int:
        return self._ttls.get(entity, DEFAULT_TTL)

    def get(self, entity: EntityType, key: str) -> Any | None:
        entry = self._entries[entity].get(key)
        if entry is None:
            self._misses += 1
            return None
        if self._clock() - entry.inserted_at >= self.ttl(entity):
            del self._entries[entity][key]
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def set(self, entity: EntityType, key: str, value: Any) -> None:
        if not self._enabled:
            return
        self._entries[entity][key] = CacheEntry(value=value, inserted_at=self._clock())

    async def get_or_load(
        self, entity: EntityType, key: str, loader: Callable[[], Awaitable[T]]
    ) -> T:
        cached = self.get(entity, key)
        if cached is not None:
            return cached
        value = await loader()
        if value is not None:
            self.set(entity, key, value)
        return value

    def invalidate_all(self, entity: EntityType) -> None:
        dropped = len(self._entries[entity])
        self._entries[entity] = {}
        self._invalidations += 1
        if dropped:
            logger.debug("cache_invalidated", entity=entity.value, dropped=dropped)

    def stats(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "hits": self._hits,
            "misses": self._misses,
            "invalidations": self._invalidations,
            "sizes": {e.value: len(entries) for e, entries in self._entries.items()},
        }

    async def close(self) -> None:
        for entity in EntityType:
            self._entries[entity] = {}

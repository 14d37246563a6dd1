"""Cache implementations."""

from watchcraft.infrastructure.cache.entity_cache import EntityCache

__all__ = ["EntityCache"]

"""Core interfaces (ports) for dependency injection."""

from watchcraft.core.interfaces.cache import IEntityCache
from watchcraft.core.interfaces.collaborators import (
    SYSTEM_ACTOR,
    Actor,
    IAuditLog,
    IDocumentGenerator,
    IRefreshNotifier,
)
from watchcraft.core.interfaces.lifecycle import Closeable
from watchcraft.core.interfaces.repository import (
    EntityType,
    IRepository,
    Row,
    Write,
    WriteKind,
    WriteResult,
)

__all__ = [
    # Lifecycle
    "Closeable",
    # Storage interfaces
    "IRepository",
    "EntityType",
    "Row",
    "Write",
    "WriteKind",
    "WriteResult",
    # Cache interfaces
    "IEntityCache",
    # Collaborators
    "IDocumentGenerator",
    "IAuditLog",
    "IRefreshNotifier",
    "Actor",
    "SYSTEM_ACTOR",
]

"""Interfaces of the collaborators the engine calls out to."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from watchcraft.core.entities.invoice import DocumentKind, DocumentRef
from watchcraft.core.interfaces.repository import EntityType


@dataclass(frozen=True)
class Actor:
    """Who triggered a domain event, for the audit trail."""

    username: str = "system"
    role: str = "system"


SYSTEM_ACTOR = Actor()


class IDocumentGenerator(ABC):
    """Produces invoices and acknowledgement receipts."""

    @abstractmethod
    async def generate(self, kind: DocumentKind, related: BaseModel) -> DocumentRef:
        """Generate a document for a sale or service and return its id."""
        pass


class IAuditLog(ABC):
    """Fire-and-forget audit trail."""

    @abstractmethod
    def log(
        self,
        actor_username: str,
        actor_role: str,
        action: str,
        category: str,
        details: dict[str, Any],
    ) -> None:
        """Record an action. Must not block the business event."""
        pass


class IRefreshNotifier(ABC):
    """Hint to the UI layer that a collection changed."""

    @abstractmethod
    def notify(self, entity: EntityType) -> None:
        """Signal a change. Delivery is not guaranteed."""
        pass

"""
Audit log and refresh notifier implementations.

Both are synchronous and cheap: the audit trail is a dedicated structlog
logger, refresh hints go to registered listeners.
"""

from collections.abc import Callable
from typing import Any

from watchcraft.config import get_logger
from watchcraft.core.interfaces.collaborators import IAuditLog, IRefreshNotifier
from watchcraft.core.interfaces.repository import EntityType

logger = get_logger(__name__)
audit_logger = get_logger("watchcraft.audit")


class StructlogAuditLog(IAuditLog):
    """Writes audit records to the ``watchcraft.audit`` logger."""

    def log(
        self,
        actor_username: str,
        actor_role: str,
        action: str,
        category: str,
        details: dict[str, Any],
    ) -> None:
        audit_logger.info(
            action,
            actor=actor_username,
            role=actor_role,
            category=category,
            **details,
        )


class LoggingRefreshNotifier(IRefreshNotifier):
    """
    Fans refresh hints out to listeners.

    A failing listener is logged and skipped so the others still hear
    about the change.
    """

    def __init__(self) -> None:
        self._listeners: list[Callable[[EntityType], None]] = []

    def subscribe(self, listener: Callable[[EntityType], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[EntityType], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, entity: EntityType) -> None:
        logger.debug("refresh_requested", entity=entity.value)
        for listener in list(self._listeners):
            try:
                listener(entity)
            except Exception as e:
                logger.warning(
                    "refresh_listener_failed", entity=entity.value, error=str(e)
                )

"""
Side-effect document dispatcher.

Runs after a business event has committed. Generation failures are
recorded on the originating row and never undo the event: transient
failures leave the document ``pending`` for a later ``redispatch``,
anything else marks it ``failed``.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from watchcraft.config import get_logger
from watchcraft.config.settings import DocumentSettings
from watchcraft.core.entities.invoice import DocumentKind, DocumentRef, DocumentStatus
from watchcraft.core.entities.sale import Sale
from watchcraft.core.entities.service import Service
from watchcraft.core.exceptions import NotFoundError
from watchcraft.core.interfaces.cache import IEntityCache
from watchcraft.core.interfaces.collaborators import IDocumentGenerator
from watchcraft.core.interfaces.repository import EntityType, IRepository

logger = get_logger(__name__)

RETRYABLE_ERRORS = (TimeoutError, ConnectionError)


@dataclass(frozen=True)
class DocumentTarget:
    """Where a document kind records its id and status."""

    entity: EntityType
    id_field: str
    status_field: str
    model: type[BaseModel]


DOCUMENT_TARGETS: dict[DocumentKind, DocumentTarget] = {
    DocumentKind.SALES_INVOICE: DocumentTarget(
        EntityType.SALE, "invoice_id", "invoice_status", Sale
    ),
    DocumentKind.SERVICE_ACKNOWLEDGEMENT: DocumentTarget(
        EntityType.SERVICE,
        "acknowledgement_invoice_id",
        "acknowledgement_status",
        Service,
    ),
    DocumentKind.SERVICE_COMPLETION_INVOICE: DocumentTarget(
        EntityType.SERVICE,
        "completion_invoice_id",
        "completion_invoice_status",
        Service,
    ),
}


@dataclass
class DispatchOutcome:
    """Result of one dispatch attempt."""

    kind: DocumentKind
    entity_id: int
    status: DocumentStatus
    document_id: int | None = None
    error: str | None = None


@dataclass
class PendingDocument:
    """A document still owed for an entity."""

    kind: DocumentKind
    entity: EntityType
    entity_id: int
    status: DocumentStatus


class DocumentDispatcher:
    """Generates side-effect documents with timeout and retry."""

    def __init__(
        self,
        generator: IDocumentGenerator,
        repository: IRepository,
        cache: IEntityCache | None = None,
        settings: DocumentSettings | None = None,
    ):
        self._generator = generator
        self._repository = repository
        self._cache = cache
        self._settings = settings or DocumentSettings()

    def _get_retry_decorator(self) -> Any:
        """Get tenacity retry decorator with current settings."""
        s = self._settings
        return retry(
            stop=stop_after_attempt(max(1, s.max_retries)),
            wait=wait_exponential(
                multiplier=s.retry_delay,
                min=s.retry_delay,
                max=s.retry_delay * (s.retry_multiplier**3),
            ),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        """Log retry attempts."""
        logger.warning(
            "document_generation_retry",
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else None,
        )

    async def _generate_once(self, kind: DocumentKind, related: BaseModel) -> DocumentRef:
        return await asyncio.wait_for(
            self._generator.generate(kind, related),
            timeout=self._settings.timeout,
        )

    async def dispatch(
        self,
        kind: DocumentKind,
        entity: EntityType,
        entity_id: int,
        related: BaseModel,
    ) -> DispatchOutcome:
        """
        Generate one document and record the outcome on its entity row.

        Never raises for generator failures; the outcome carries the status.
        """
        target = DOCUMENT_TARGETS[kind]
        if entity != target.entity:
            raise ValueError(f"{kind.value} documents belong to {target.entity.value}")

        try:
            ref = await self._get_retry_decorator()(self._generate_once)(kind, related)
        except RETRYABLE_ERRORS as e:
            logger.warning(
                "document_generation_pending",
                kind=kind.value,
                entity=entity.value,
                entity_id=entity_id,
                error=str(e) or e.__class__.__name__,
            )
            await self._record(target, entity_id, {target.status_field: DocumentStatus.PENDING})
            return DispatchOutcome(
                kind, entity_id, DocumentStatus.PENDING, error=str(e) or e.__class__.__name__
            )
        except Exception as e:
            logger.error(
                "document_generation_failed",
                kind=kind.value,
                entity=entity.value,
                entity_id=entity_id,
                error=str(e),
                exc_info=True,
            )
            await self._record(target, entity_id, {target.status_field: DocumentStatus.FAILED})
            return DispatchOutcome(kind, entity_id, DocumentStatus.FAILED, error=str(e))

        await self._record(
            target,
            entity_id,
            {target.id_field: ref.document_id, target.status_field: DocumentStatus.GENERATED},
        )
        logger.info(
            "document_generated",
            kind=kind.value,
            entity=entity.value,
            entity_id=entity_id,
            document_id=ref.document_id,
            document_no=ref.document_no,
        )
        return DispatchOutcome(kind, entity_id, DocumentStatus.GENERATED, ref.document_id)

    async def _record(
        self, target: DocumentTarget, entity_id: int, patch: dict[str, Any]
    ) -> None:
        """Store the outcome; a storage failure leaves the row as it was."""
        try:
            changed = await self._repository.update(target.entity, entity_id, patch)
        except Exception as e:
            logger.error(
                "document_status_write_failed",
                entity=target.entity.value,
                entity_id=entity_id,
                error=str(e),
            )
            return
        if not changed:
            logger.warning(
                "document_target_missing",
                entity=target.entity.value,
                entity_id=entity_id,
            )
        if self._cache is not None:
            self._cache.invalidate_all(target.entity)
            self._cache.invalidate_all(EntityType.INVOICE)

    async def find_pending_documents(self) -> list[PendingDocument]:
        """Every document still in ``pending`` or ``failed`` state."""
        owed = (DocumentStatus.PENDING.value, DocumentStatus.FAILED.value)
        pending: list[PendingDocument] = []
        for kind, target in DOCUMENT_TARGETS.items():
            rows = await self._repository.find_by(
                target.entity,
                predicate=lambda row, field=target.status_field: row.get(field) in owed,
            )
            pending.extend(
                PendingDocument(
                    kind, target.entity, row["id"], DocumentStatus(row[target.status_field])
                )
                for row in rows
            )
        return pending

    async def redispatch(self, document: PendingDocument) -> DispatchOutcome:
        """Retry generation for a pending or failed document."""
        target = DOCUMENT_TARGETS[document.kind]
        row = await self._repository.get(target.entity, document.entity_id)
        if row is None:
            raise NotFoundError(target.entity.label, document.entity_id)
        related = target.model.model_validate(row)
        logger.info(
            "document_redispatch",
            kind=document.kind.value,
            entity_id=document.entity_id,
            previous_status=document.status.value,
        )
        return await self.dispatch(document.kind, target.entity, document.entity_id, related)

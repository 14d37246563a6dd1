"""
Invoice generator backed by the repository.

Writes an ``invoices`` row per document. Numbers follow
``<PREFIX>-<YYMM><NNNN>`` with a per-prefix, per-month sequence; when two
generators race for the same number the unique constraint rejects one and
it takes the next number.
"""

from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

from watchcraft.config import get_logger
from watchcraft.core.entities.invoice import (
    DocumentKind,
    DocumentRef,
    Invoice,
    RelatedType,
)
from watchcraft.core.entities.sale import Sale
from watchcraft.core.entities.service import Service
from watchcraft.core.exceptions import ConflictError, DocumentGenerationError
from watchcraft.core.interfaces.collaborators import IDocumentGenerator
from watchcraft.core.interfaces.repository import EntityType, IRepository

logger = get_logger(__name__)

SEQUENCE_WIDTH = 4


def invoice_number(prefix: str, when: datetime, sequence: int) -> str:
    return f"{prefix}-{when:%y%m}{sequence:0{SEQUENCE_WIDTH}d}"


class RepositoryInvoiceGenerator(IDocumentGenerator):
    """Issues invoices and acknowledgement receipts as ``Invoice`` rows."""

    def __init__(
        self,
        repository: IRepository,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._repository = repository
        self._max_attempts = max_attempts
        self._clock = clock

    async def generate(self, kind: DocumentKind, related: BaseModel) -> DocumentRef:
        if isinstance(related, Sale):
            related_type = RelatedType.SALE
            amount = related.total_amount
        elif isinstance(related, Service):
            related_type = RelatedType.SERVICE
            amount = related.cost
        else:
            raise DocumentGenerationError(
                kind.value, None, f"unsupported entity {type(related).__name__}"
            )
        if related.id is None:
            raise DocumentGenerationError(kind.value, None, "entity has no id")

        now = self._clock()
        for attempt in range(1, self._max_attempts + 1):
            invoice_no = await self._next_number(kind.number_prefix, now)
            invoice = Invoice(
                invoice_no=invoice_no,
                type=kind.invoice_type,
                customer_id=related.customer_id,
                related_id=related.id,
                related_type=related_type,
                amount=amount,
                invoice_date=now,
                created_at=now,
            )
            try:
                invoice_id = await self._repository.insert(
                    EntityType.INVOICE, invoice.model_dump(exclude={"id"})
                )
            except ConflictError:
                logger.debug(
                    "invoice_number_taken", invoice_no=invoice_no, attempt=attempt
                )
                continue

            logger.info(
                "invoice_issued",
                invoice_id=invoice_id,
                invoice_no=invoice_no,
                kind=kind.value,
                related_id=related.id,
            )
            return DocumentRef(document_id=invoice_id, document_no=invoice_no)

        raise DocumentGenerationError(
            kind.value,
            related.id,
            f"no free invoice number after {self._max_attempts} attempts",
        )

    async def _next_number(self, prefix: str, when: datetime) -> str:
        stem = invoice_number(prefix, when, 0)[:-SEQUENCE_WIDTH]
        rows = await self._repository.find_by(
            EntityType.INVOICE,
            predicate=lambda row: str(row["invoice_no"]).startswith(stem),
        )
        sequences = [
            int(row["invoice_no"][len(stem):])
            for row in rows
            if row["invoice_no"][len(stem):].isdigit()
        ]
        return invoice_number(prefix, when, max(sequences, default=0) + 1)

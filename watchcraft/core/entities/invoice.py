"""Invoice and side-effect document entities."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from watchcraft.core.entities.money import ZERO, Money


class InvoiceType(str, Enum):
    """Billing document types."""

    SALES = "Sales"
    SERVICE_COMPLETION = "Service Completion"
    SERVICE_ACKNOWLEDGEMENT = "Service Acknowledgement"


class RelatedType(str, Enum):
    """What an invoice was issued for."""

    SALE = "sale"
    SERVICE = "service"


class InvoiceStatus(str, Enum):
    """Billing status, owned by the invoicing side."""

    GENERATED = "generated"
    SENT = "sent"
    PAID = "paid"
    CANCELLED = "cancelled"


class DocumentKind(str, Enum):
    """Documents the engine asks the generator for."""

    SALES_INVOICE = "SalesInvoice"
    SERVICE_ACKNOWLEDGEMENT = "ServiceAcknowledgement"
    SERVICE_COMPLETION_INVOICE = "ServiceCompletionInvoice"

    @property
    def invoice_type(self) -> InvoiceType:
        return {
            DocumentKind.SALES_INVOICE: InvoiceType.SALES,
            DocumentKind.SERVICE_ACKNOWLEDGEMENT: InvoiceType.SERVICE_ACKNOWLEDGEMENT,
            DocumentKind.SERVICE_COMPLETION_INVOICE: InvoiceType.SERVICE_COMPLETION,
        }[self]

    @property
    def number_prefix(self) -> str:
        return {
            DocumentKind.SALES_INVOICE: "SI",
            DocumentKind.SERVICE_ACKNOWLEDGEMENT: "ACK",
            DocumentKind.SERVICE_COMPLETION_INVOICE: "SV",
        }[self]


class DocumentStatus(str, Enum):
    """
    Generation state of a side-effect document on its originating entity.

    ``pending`` and ``failed`` rows are picked up by reconciliation.
    """

    NONE = "none"
    PENDING = "pending"
    GENERATED = "generated"
    FAILED = "failed"


class DocumentRef(BaseModel):
    """What the document generator returns."""

    document_id: int
    document_no: str | None = None


class Invoice(BaseModel):
    """An issued invoice or acknowledgement receipt."""

    id: int | None = None
    invoice_no: str
    type: InvoiceType
    customer_id: int
    related_id: int
    related_type: RelatedType
    amount: Money = ZERO
    status: InvoiceStatus = InvoiceStatus.GENERATED
    invoice_date: datetime = Field(default_factory=datetime.utcnow)
    created_at: datetime = Field(default_factory=datetime.utcnow)

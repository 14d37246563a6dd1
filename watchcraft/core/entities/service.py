"""Repair service ticket entities."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field

from watchcraft.core.entities.invoice import DocumentStatus
from watchcraft.core.entities.money import ZERO, Money


class ServiceStatus(str, Enum):
    """Service ticket lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class CaseType(str, Enum):
    STEEL = "Steel"
    GOLD_TONE = "Gold Tone"
    FIBER = "Fiber"


class StrapType(str, Enum):
    LEATHER = "Leather"
    FIBER = "Fiber"
    STEEL = "Steel"
    GOLD_PLATED = "Gold Plated"


MAX_WARRANTY_MONTHS = 60


class Service(BaseModel):
    """
    A watch repair ticket.

    ``cost`` is an estimate until the ticket is completed, then final.
    Only completed tickets count toward the customer's net value.
    """

    id: int | None = None
    customer_id: int

    # Watch descriptor
    watch_name: str
    brand: str
    model: str
    dial_color: str | None = None
    movement_no: str | None = None
    gender: Gender | None = None
    case_type: CaseType | None = None
    strap_type: StrapType | None = None
    issue: str = ""

    cost: Money = ZERO
    status: ServiceStatus = ServiceStatus.PENDING

    service_date: datetime = Field(default_factory=datetime.utcnow)
    estimated_delivery: date | None = None
    started_at: datetime | None = None
    held_at: datetime | None = None
    completed_at: datetime | None = None
    actual_delivery: date | None = None

    completion_description: str | None = None
    completion_image: str | None = None
    warranty_period: int = Field(default=0, ge=0, le=MAX_WARRANTY_MONTHS)

    acknowledgement_invoice_id: int | None = None
    acknowledgement_status: DocumentStatus = DocumentStatus.NONE
    completion_invoice_id: int | None = None
    completion_invoice_status: DocumentStatus = DocumentStatus.NONE

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_completed(self) -> bool:
        return self.status == ServiceStatus.COMPLETED

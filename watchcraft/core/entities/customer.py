"""Customer domain entities."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from watchcraft.core.entities.money import ZERO, Money


class Customer(BaseModel):
    """
    A registered customer.

    ``purchase_count``, ``service_count`` and ``net_value`` are aggregate
    fields maintained by the engine from the customer's sales and services.
    """

    id: int | None = None
    name: str = Field(min_length=1, max_length=100)
    email: str
    phone: str
    address: str = ""

    # Aggregates
    purchase_count: int = 0
    service_count: int = 0
    net_value: Money = ZERO
    needs_reconciliation: bool = False

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, v: str) -> str:
        return v.strip()


class CustomerAggregates(BaseModel):
    """Read model of a customer's denormalized fields."""

    customer_id: int
    purchase_count: int
    service_count: int
    net_value: Decimal
    needs_reconciliation: bool = False

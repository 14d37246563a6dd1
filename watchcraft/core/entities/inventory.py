"""Inventory domain entities."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from watchcraft.core.entities.money import ZERO, Money


class ItemType(str, Enum):
    """Kinds of stock the shop carries."""

    WATCH = "Watch"
    CLOCK = "Clock"
    TIMEPIECE = "Timepiece"
    STRAP = "Strap"
    BATTERY = "Battery"


class ItemStatus(str, Enum):
    """Availability derived from quantity."""

    AVAILABLE = "available"
    SOLD = "sold"


def status_for_quantity(quantity: int) -> ItemStatus:
    """Derive item status: available while any stock remains."""
    return ItemStatus.AVAILABLE if quantity > 0 else ItemStatus.SOLD


class InventoryItem(BaseModel):
    """A stock line; ``quantity`` and ``status`` are engine-owned."""

    id: int | None = None
    code: str = Field(min_length=1)
    type: ItemType = ItemType.WATCH
    brand: str
    model: str
    size: str = "-"
    outlet: str = "Main"
    price: Money = ZERO
    quantity: int = 0
    status: ItemStatus = ItemStatus.SOLD
    needs_reconciliation: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def derive_status(self) -> "InventoryItem":
        """Keep status consistent with quantity."""
        self.status = status_for_quantity(self.quantity)
        return self

"""Sale domain entities."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from watchcraft.core.entities.invoice import DocumentStatus
from watchcraft.core.entities.money import ZERO, Money, to_money


class DiscountType(str, Enum):
    """How the discount value is interpreted."""

    NONE = "none"
    PERCENTAGE = "percentage"
    AMOUNT = "amount"


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    CASH = "Cash"
    CARD = "Card"
    UPI = "UPI"
    BANK_TRANSFER = "Bank Transfer"


def compute_discount(
    subtotal: Decimal, discount_type: DiscountType, value: Decimal
) -> Decimal:
    """Discount amount, clamped to [0, subtotal]."""
    if discount_type == DiscountType.PERCENTAGE:
        amount = to_money(subtotal * value / Decimal(100))
    elif discount_type == DiscountType.AMOUNT:
        amount = to_money(value)
    else:
        amount = ZERO
    return min(max(amount, ZERO), subtotal)


class Sale(BaseModel):
    """A single-item sale to a customer."""

    id: int | None = None
    customer_id: int
    inventory_id: int
    quantity: int = Field(ge=1)
    unit_price: Money
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Money = ZERO
    discount_amount: Money = ZERO
    subtotal: Money = ZERO
    total_amount: Money = ZERO
    payment_method: PaymentMethod = PaymentMethod.CASH
    sale_date: datetime = Field(default_factory=datetime.utcnow)
    invoice_id: int | None = None
    invoice_status: DocumentStatus = DocumentStatus.NONE
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode="after")
    def compute_totals(self) -> "Sale":
        """Compute subtotal, discount_amount and total_amount."""
        self.subtotal = to_money(self.unit_price * self.quantity)
        self.discount_amount = compute_discount(
            self.subtotal, self.discount_type, self.discount_value
        )
        self.total_amount = self.subtotal - self.discount_amount
        return self

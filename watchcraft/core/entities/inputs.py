"""
Input models for engine operations.

Validated before any write; pydantic failures are re-raised as the
domain ``ValidationError`` by ``parse_input``.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from watchcraft.core.entities.inventory import ItemType
from watchcraft.core.entities.money import ZERO, Money
from watchcraft.core.entities.sale import DiscountType, PaymentMethod
from watchcraft.core.entities.service import (
    MAX_WARRANTY_MONTHS,
    CaseType,
    Gender,
    StrapType,
)
from watchcraft.core.exceptions import ValidationError

M = TypeVar("M", bound=BaseModel)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = r"^\+?[0-9\-\s()]{10,15}$"


def parse_input(model: type[M], data: Any) -> M:
    """Validate ``data`` into ``model`` or raise ``ValidationError``."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or model.__name__
        raise ValidationError(field, error["msg"], error.get("input")) from e


class CustomerInput(BaseModel):
    """New customer registration."""

    name: str = Field(min_length=1, max_length=100)
    email: str = Field(pattern=EMAIL_PATTERN)
    phone: str = Field(pattern=PHONE_PATTERN)
    address: str = Field(default="", max_length=500)

    @field_validator("name", "email", "phone", mode="before")
    @classmethod
    def strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class InventoryItemInput(BaseModel):
    """New stock line. Opening quantity goes through the same guard as sales."""

    code: str = Field(min_length=1, max_length=50)
    type: ItemType = ItemType.WATCH
    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)
    size: str = "-"
    outlet: str = "Main"
    price: Money = Field(default=ZERO, ge=0)
    quantity: int = Field(default=0, ge=0)


class SaleInput(BaseModel):
    """
    A sale to record.

    ``unit_price`` defaults to the item's list price when omitted.
    """

    customer_id: int
    inventory_id: int
    quantity: int = Field(default=1, ge=1)
    unit_price: Money | None = None
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Money = Field(default=ZERO, ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    sale_date: datetime | None = None

    @field_validator("unit_price")
    @classmethod
    def non_negative_price(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("unit_price must be >= 0")
        return v


class ServiceInput(BaseModel):
    """A repair ticket to open."""

    customer_id: int
    watch_name: str = Field(min_length=1)
    brand: str = Field(min_length=1)
    model: str = Field(min_length=1)
    dial_color: str | None = None
    movement_no: str | None = None
    gender: Gender | None = None
    case_type: CaseType | None = None
    strap_type: StrapType | None = None
    issue: str = ""
    cost: Money = Field(default=ZERO, ge=0)
    service_date: datetime | None = None
    estimated_delivery: date | None = None


class ServiceCompletion(BaseModel):
    """Details required to complete a repair ticket."""

    completion_description: str = Field(min_length=1)
    final_cost: Money = Field(ge=0)
    warranty_period: int = Field(ge=0, le=MAX_WARRANTY_MONTHS)
    completion_image: str | None = None
    actual_delivery: date | None = None

    @field_validator("completion_description", mode="before")
    @classmethod
    def strip_description(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

"""Expense entity."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from watchcraft.core.entities.money import Money


class ExpenseCategory(str, Enum):
    OFFICE_SUPPLIES = "office-supplies"
    UTILITIES = "utilities"
    RENT = "rent"
    MAINTENANCE = "maintenance"
    TOOLS_EQUIPMENT = "tools-equipment"
    MARKETING = "marketing"
    TRAVEL = "travel"
    FOOD_BEVERAGES = "food-beverages"
    PROFESSIONAL_SERVICES = "professional-services"
    INSURANCE = "insurance"
    TAXES = "taxes"
    MISCELLANEOUS = "miscellaneous"


class ExpensePaymentMethod(str, Enum):
    CASH = "Cash"
    CARD = "Card"
    UPI = "UPI"
    BANK_TRANSFER = "Bank Transfer"
    CHEQUE = "Cheque"
    OTHER = "Other"


class Expense(BaseModel):
    """A shop expense. Plain CRUD; no aggregates depend on it."""

    id: int | None = None
    expense_date: date = Field(default_factory=date.today)
    category: ExpenseCategory = ExpenseCategory.MISCELLANEOUS
    description: str = Field(min_length=1)
    amount: Money
    payment_method: ExpensePaymentMethod = ExpensePaymentMethod.CASH
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("amount")
    @classmethod
    def positive_amount(cls, v):
        if v <= 0:
            raise ValueError("Expense amount must be positive")
        return v

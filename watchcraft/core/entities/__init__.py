"""Core domain entities."""

from watchcraft.core.entities.customer import Customer, CustomerAggregates
from watchcraft.core.entities.expense import (
    Expense,
    ExpenseCategory,
    ExpensePaymentMethod,
)
from watchcraft.core.entities.inputs import (
    CustomerInput,
    InventoryItemInput,
    SaleInput,
    ServiceCompletion,
    ServiceInput,
    parse_input,
)
from watchcraft.core.entities.inventory import (
    InventoryItem,
    ItemStatus,
    ItemType,
    status_for_quantity,
)
from watchcraft.core.entities.invoice import (
    DocumentKind,
    DocumentRef,
    DocumentStatus,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    RelatedType,
)
from watchcraft.core.entities.money import ZERO, Money, to_money
from watchcraft.core.entities.sale import (
    DiscountType,
    PaymentMethod,
    Sale,
    compute_discount,
)
from watchcraft.core.entities.service import (
    MAX_WARRANTY_MONTHS,
    CaseType,
    Gender,
    Service,
    ServiceStatus,
    StrapType,
)

__all__ = [
    # Money
    "Money",
    "ZERO",
    "to_money",
    # Customer entities
    "Customer",
    "CustomerAggregates",
    # Inventory entities
    "InventoryItem",
    "ItemStatus",
    "ItemType",
    "status_for_quantity",
    # Sale entities
    "Sale",
    "DiscountType",
    "PaymentMethod",
    "compute_discount",
    # Service entities
    "Service",
    "ServiceStatus",
    "Gender",
    "CaseType",
    "StrapType",
    "MAX_WARRANTY_MONTHS",
    # Invoice / document entities
    "Invoice",
    "InvoiceType",
    "InvoiceStatus",
    "RelatedType",
    "DocumentKind",
    "DocumentRef",
    "DocumentStatus",
    # Expense entities
    "Expense",
    "ExpenseCategory",
    "ExpensePaymentMethod",
    # Operation inputs
    "CustomerInput",
    "InventoryItemInput",
    "SaleInput",
    "ServiceInput",
    "ServiceCompletion",
    "parse_input",
]

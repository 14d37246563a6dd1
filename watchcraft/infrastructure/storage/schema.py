"""Constraint metadata shared by the storage backends."""

from decimal import Decimal
from typing import Any

from watchcraft.core.interfaces.repository import EntityType

# Columns that must be unique per collection
UNIQUE_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.CUSTOMER: ("email", "phone"),
    EntityType.INVENTORY: ("code",),
    EntityType.INVOICE: ("invoice_no",),
}

# Delete-restricting references: parent -> [(child collection, FK column)]
REFERENCES: dict[EntityType, tuple[tuple[EntityType, str], ...]] = {
    EntityType.CUSTOMER: (
        (EntityType.SALE, "customer_id"),
        (EntityType.SERVICE, "customer_id"),
    ),
    EntityType.INVENTORY: ((EntityType.SALE, "inventory_id"),),
}

# Collections that carry an updated_at column
TIMESTAMPED: frozenset[EntityType] = frozenset(
    {
        EntityType.CUSTOMER,
        EntityType.INVENTORY,
        EntityType.SALE,
        EntityType.SERVICE,
        EntityType.EXPENSE,
    }
)

# Column defaults applied by the SQL schema, so rows look the same on every
# backend. Timestamps are filled in by the backend itself.
COLUMN_DEFAULTS: dict[EntityType, dict[str, Any]] = {
    EntityType.CUSTOMER: {
        "address": "",
        "purchase_count": 0,
        "service_count": 0,
        "net_value": Decimal("0.00"),
        "needs_reconciliation": 0,
    },
    EntityType.INVENTORY: {
        "type": "Watch",
        "size": "-",
        "outlet": "Main",
        "price": Decimal("0.00"),
        "quantity": 0,
        "status": "sold",
        "needs_reconciliation": 0,
    },
    EntityType.SALE: {
        "discount_type": "none",
        "discount_value": Decimal("0.00"),
        "discount_amount": Decimal("0.00"),
        "payment_method": "Cash",
        "invoice_id": None,
        "invoice_status": "none",
    },
    EntityType.SERVICE: {
        "dial_color": None,
        "movement_no": None,
        "gender": None,
        "case_type": None,
        "strap_type": None,
        "issue": "",
        "cost": Decimal("0.00"),
        "status": "pending",
        "estimated_delivery": None,
        "started_at": None,
        "held_at": None,
        "completed_at": None,
        "actual_delivery": None,
        "completion_description": None,
        "completion_image": None,
        "warranty_period": 0,
        "acknowledgement_invoice_id": None,
        "acknowledgement_status": "none",
        "completion_invoice_id": None,
        "completion_invoice_status": "none",
    },
    EntityType.INVOICE: {
        "amount": Decimal("0.00"),
        "status": "generated",
    },
    EntityType.EXPENSE: {
        "category": "miscellaneous",
        "payment_method": "Cash",
    },
}

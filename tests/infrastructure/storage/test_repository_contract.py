"""Behaviour every repository backend shares."""

from decimal import Decimal

import pytest

from watchcraft.core.exceptions import (
    ConflictError,
    GuardViolationError,
    NotFoundError,
    ReferentialIntegrityError,
    StorageError,
)
from watchcraft.core.interfaces import EntityType, Write


def customer_fields(n: int = 1) -> dict:
    return {
        "name": f"Customer {n}",
        "email": f"c{n}@example.com",
        "phone": f"90000{n:05d}",
        "address": "",
        "net_value": Decimal("0.00"),
        "purchase_count": 0,
        "service_count": 0,
    }


def item_fields(code: str = "W-1", quantity: int = 3) -> dict:
    return {
        "code": code,
        "brand": "Casio",
        "model": "F-91W",
        "price": Decimal("25.00"),
        "quantity": quantity,
        "status": "available",
    }


class TestCrud:
    async def test_insert_and_get(self, repo):
        customer_id = await repo.insert(EntityType.CUSTOMER, customer_fields())

        row = await repo.get(EntityType.CUSTOMER, customer_id)

        assert row["id"] == customer_id
        assert row["email"] == "c1@example.com"
        assert row["net_value"] == Decimal("0.00")

    async def test_insert_fills_column_defaults(self, repo):
        item_id = await repo.insert(
            EntityType.INVENTORY, {"code": "W-9", "brand": "Seiko", "model": "SKX"}
        )

        row = await repo.get(EntityType.INVENTORY, item_id)

        assert row["outlet"] == "Main"
        assert row["size"] == "-"
        assert row["type"] == "Watch"
        assert row["quantity"] == 0
        assert row["status"] == "sold"
        assert not row["needs_reconciliation"]
        assert row["created_at"] is not None
        assert row["updated_at"] is not None

    async def test_get_missing(self, repo):
        assert await repo.get(EntityType.CUSTOMER, 999) is None

    async def test_update_and_delete_report_counts(self, repo):
        item_id = await repo.insert(EntityType.INVENTORY, item_fields())

        assert await repo.update(EntityType.INVENTORY, item_id, {"outlet": "Annex"}) == 1
        assert (await repo.get(EntityType.INVENTORY, item_id))["outlet"] == "Annex"
        assert await repo.update(EntityType.INVENTORY, 999, {"outlet": "x"}) == 0

        assert await repo.delete(EntityType.INVENTORY, item_id) == 1
        assert await repo.delete(EntityType.INVENTORY, item_id) == 0

    async def test_find_by_filters_in_id_order(self, repo):
        first = await repo.insert(EntityType.INVENTORY, item_fields("A", quantity=0))
        second = await repo.insert(EntityType.INVENTORY, item_fields("B", quantity=4))
        third = await repo.insert(EntityType.INVENTORY, item_fields("C", quantity=9))

        rows = await repo.find_by(EntityType.INVENTORY, brand="Casio")
        assert [r["id"] for r in rows] == [first, second, third]

        stocked = await repo.find_by(
            EntityType.INVENTORY, predicate=lambda r: r["quantity"] > 0
        )
        assert [r["code"] for r in stocked] == ["B", "C"]

    async def test_money_round_trips_exactly(self, repo):
        item_id = await repo.insert(
            EntityType.INVENTORY, {**item_fields(), "price": Decimal("1234.56")}
        )
        row = await repo.get(EntityType.INVENTORY, item_id)
        assert row["price"] == Decimal("1234.56")
        assert isinstance(row["price"], Decimal)


class TestConstraints:
    async def test_unique_email(self, repo):
        await repo.insert(EntityType.CUSTOMER, customer_fields(1))
        with pytest.raises(ConflictError) as exc_info:
            await repo.insert(
                EntityType.CUSTOMER, {**customer_fields(2), "email": "c1@example.com"}
            )
        assert exc_info.value.details["field"] == "email"

    async def test_unique_inventory_code(self, repo):
        await repo.insert(EntityType.INVENTORY, item_fields("W-7"))
        with pytest.raises(ConflictError):
            await repo.insert(EntityType.INVENTORY, item_fields("W-7"))

    async def test_delete_restricted_by_sales(self, repo):
        customer_id = await repo.insert(EntityType.CUSTOMER, customer_fields())
        item_id = await repo.insert(EntityType.INVENTORY, item_fields())
        await repo.insert(
            EntityType.SALE,
            {
                "customer_id": customer_id,
                "inventory_id": item_id,
                "quantity": 1,
                "unit_price": Decimal("25.00"),
                "subtotal": Decimal("25.00"),
                "total_amount": Decimal("25.00"),
                "sale_date": "2026-01-05T10:00:00",
            },
        )

        with pytest.raises(ReferentialIntegrityError):
            await repo.delete(EntityType.CUSTOMER, customer_id)
        with pytest.raises(ReferentialIntegrityError):
            await repo.delete(EntityType.INVENTORY, item_id)


class TestRunAtomic:
    async def test_deltas_and_derive(self, repo):
        item_id = await repo.insert(EntityType.INVENTORY, item_fields(quantity=1))

        def derive(row):
            return {"status": "available" if row["quantity"] > 0 else "sold"}

        [result] = await repo.run_atomic(
            [
                Write.update(
                    EntityType.INVENTORY,
                    item_id,
                    deltas={"quantity": -1},
                    floors={"quantity": 0},
                    derive=derive,
                )
            ]
        )

        assert result.before["quantity"] == 1
        assert result.after["quantity"] == 0
        assert result.after["status"] == "sold"

    async def test_floor_violation(self, repo):
        item_id = await repo.insert(EntityType.INVENTORY, item_fields(quantity=1))
        op = Write.update(
            EntityType.INVENTORY, item_id, deltas={"quantity": -2}, floors={"quantity": 0}
        )

        with pytest.raises(StorageError) as exc_info:
            await repo.run_atomic([op])

        error = exc_info.value
        guard = getattr(error, "cause", error)
        assert isinstance(guard, GuardViolationError)
        assert guard.op is op
        assert (await repo.get(EntityType.INVENTORY, item_id))["quantity"] == 1

    async def test_expect_mismatch(self, repo):
        item_id = await repo.insert(EntityType.INVENTORY, item_fields())

        with pytest.raises(StorageError):
            await repo.run_atomic(
                [
                    Write.update(
                        EntityType.INVENTORY,
                        item_id,
                        {"outlet": "Annex"},
                        expect={"status": "sold"},
                    )
                ]
            )

        assert (await repo.get(EntityType.INVENTORY, item_id))["outlet"] != "Annex"

    async def test_update_missing_row(self, repo):
        with pytest.raises((NotFoundError, StorageError)):
            await repo.run_atomic([Write.update(EntityType.CUSTOMER, 42, {"name": "x"})])

    async def test_inverse_restores_row(self, repo):
        customer_id = await repo.insert(EntityType.CUSTOMER, customer_fields())
        op = Write.update(
            EntityType.CUSTOMER,
            customer_id,
            {"address": "12 MG Road"},
            deltas={"net_value": Decimal("99.95"), "purchase_count": 1},
        )

        [result] = await repo.run_atomic([op])
        await repo.run_atomic([op.inverse(result)])

        row = await repo.get(EntityType.CUSTOMER, customer_id)
        assert row["net_value"] == Decimal("0.00")
        assert row["purchase_count"] == 0
        assert row["address"] == ""

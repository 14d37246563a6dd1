"""In-memory backend: sequential batches and unguarded writes."""

import asyncio

import pytest

from watchcraft.core.exceptions import BatchWriteError, NotFoundError
from watchcraft.core.interfaces import EntityType, Write
from watchcraft.infrastructure.storage import MemoryRepository


def item_fields(code: str = "M-1", quantity: int = 2) -> dict:
    return {"code": code, "brand": "Tissot", "model": "PRX", "quantity": quantity}


class TestMemoryRepository:
    async def test_not_atomic(self, memory_repo):
        assert memory_repo.supports_atomic is False

    async def test_batch_keeps_applied_prefix(self, memory_repo):
        item_id = await memory_repo.insert(EntityType.INVENTORY, item_fields())
        ops = [
            Write.update(EntityType.INVENTORY, item_id, deltas={"quantity": -1}),
            Write.update(EntityType.INVENTORY, 404, deltas={"quantity": -1}),
        ]

        with pytest.raises(BatchWriteError) as exc_info:
            await memory_repo.run_atomic(ops)

        error = exc_info.value
        assert error.failed_index == 1
        assert len(error.applied) == 1
        assert isinstance(error.cause, NotFoundError)
        assert (await memory_repo.get(EntityType.INVENTORY, item_id))["quantity"] == 1

    async def test_unguarded_mode_ignores_floors(self):
        repo = MemoryRepository(enforce_guards=False)
        item_id = await repo.insert(EntityType.INVENTORY, item_fields(quantity=0))

        [result] = await repo.run_atomic(
            [
                Write.update(
                    EntityType.INVENTORY, item_id, deltas={"quantity": -1}, floors={"quantity": 0}
                )
            ]
        )

        assert result.after["quantity"] == -1

    async def test_rows_are_copies(self, memory_repo):
        item_id = await memory_repo.insert(EntityType.INVENTORY, item_fields())
        row = await memory_repo.get(EntityType.INVENTORY, item_id)
        row["quantity"] = 100
        assert (await memory_repo.get(EntityType.INVENTORY, item_id))["quantity"] == 2

    async def test_latency_interleaves_callers(self):
        repo = MemoryRepository(latency=0.01)
        order: list[str] = []

        async def read(tag: str) -> None:
            order.append(f"{tag}-start")
            await repo.get(EntityType.CUSTOMER, 1)
            order.append(f"{tag}-end")

        await asyncio.gather(read("a"), read("b"))

        assert order[:2] == ["a-start", "b-start"]

    async def test_insert_keeps_explicit_id(self, memory_repo):
        item_id = await memory_repo.insert(EntityType.INVENTORY, {**item_fields(), "id": 7})
        assert item_id == 7
        assert await memory_repo.insert(EntityType.INVENTORY, item_fields("M-2")) == 8


class TestRowShape:
    @pytest.mark.parametrize(
        "entity,fields",
        [
            (
                EntityType.CUSTOMER,
                {"name": "Ravi", "email": "ravi@example.com", "phone": "9000000001"},
            ),
            (EntityType.INVENTORY, {"code": "S-1", "brand": "Seiko", "model": "5"}),
            (
                EntityType.EXPENSE,
                {"expense_date": "2026-03-14", "description": "Tea", "amount": "40.00"},
            ),
        ],
    )
    async def test_same_columns_as_sqlite(self, memory_repo, sqlite_repo, entity, fields):
        memory_id = await memory_repo.insert(entity, fields)
        sqlite_id = await sqlite_repo.insert(entity, fields)

        memory_row = await memory_repo.get(entity, memory_id)
        sqlite_row = await sqlite_repo.get(entity, sqlite_id)

        assert set(memory_row) == set(sqlite_row)

    async def test_service_defaults(self, memory_repo):
        service_id = await memory_repo.insert(
            EntityType.SERVICE,
            {"customer_id": 1, "watch_name": "Diver", "brand": "Seiko", "model": "SKX"},
        )

        row = await memory_repo.get(EntityType.SERVICE, service_id)

        assert row["status"] == "pending"
        assert row["completed_at"] is None
        assert row["acknowledgement_status"] == "none"
        assert row["warranty_period"] == 0

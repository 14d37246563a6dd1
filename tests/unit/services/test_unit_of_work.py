"""Tests for UnitOfWork commit, compensation and partial failure."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from structlog.testing import LogCapture

from watchcraft.core.exceptions import (
    DatabaseError,
    GuardViolationError,
    NotFoundError,
    PartialFailureError,
)
from watchcraft.core.interfaces import EntityType, Write, WriteKind, WriteResult
from watchcraft.core.services import UnitOfWork
from watchcraft.core.services import unit_of_work as unit_of_work_module
from watchcraft.infrastructure.storage import MemoryRepository


class FailingDeleteRepository(MemoryRepository):
    """Memory repository whose sale deletes fail at the storage layer."""

    async def run_atomic(self, ops):
        for op in ops:
            if op.kind == WriteKind.DELETE and op.entity == EntityType.SALE:
                raise DatabaseError("delete sales", "connection reset")
        return await super().run_atomic(ops)


async def seed(repo: MemoryRepository, quantity: int = 1) -> tuple[int, int]:
    customer_id = await repo.insert(
        EntityType.CUSTOMER,
        {
            "name": "Asha",
            "email": "asha@example.com",
            "phone": "9876543210",
            "purchase_count": 0,
            "net_value": Decimal("0.00"),
            "needs_reconciliation": False,
        },
    )
    item_id = await repo.insert(
        EntityType.INVENTORY,
        {"code": "W-1", "quantity": quantity, "status": "available", "needs_reconciliation": False},
    )
    return customer_id, item_id


def sale_ops(customer_id: int, item_id: int, quantity: int = 1) -> list[Write]:
    return [
        Write.insert(
            EntityType.SALE,
            {"customer_id": customer_id, "inventory_id": item_id, "quantity": quantity},
        ),
        Write.update(
            EntityType.INVENTORY,
            item_id,
            deltas={"quantity": -quantity},
            floors={"quantity": 0},
        ),
        Write.update(
            EntityType.CUSTOMER,
            customer_id,
            deltas={"net_value": Decimal("100.00"), "purchase_count": 1},
        ),
    ]


class TestAtomicBackend:
    async def test_single_run_atomic_call(self):
        repo = MagicMock()
        repo.supports_atomic = True
        repo.run_atomic = AsyncMock(return_value=["r1", "r2"])
        ops = sale_ops(1, 2)[:2]

        uow = UnitOfWork(repo, "record_sale").extend(ops)
        results = await uow.commit()

        repo.run_atomic.assert_awaited_once_with(ops)
        assert results == ["r1", "r2"]

    async def test_error_propagates_unchanged(self):
        repo = MagicMock()
        repo.supports_atomic = True
        repo.run_atomic = AsyncMock(side_effect=NotFoundError("Customer", 1))

        with pytest.raises(NotFoundError):
            await UnitOfWork(repo, "record_sale").add(sale_ops(1, 2)[2]).commit()


class TestSequentialBackend:
    async def test_empty_commit(self):
        assert await UnitOfWork(MemoryRepository(), "noop").commit() == []

    async def test_commit_applies_in_order(self):
        repo = MemoryRepository()
        customer_id, item_id = await seed(repo)

        results = await UnitOfWork(repo, "record_sale").extend(
            sale_ops(customer_id, item_id)
        ).commit()

        assert [r.op.entity for r in results] == [
            EntityType.SALE,
            EntityType.INVENTORY,
            EntityType.CUSTOMER,
        ]
        assert (await repo.get(EntityType.INVENTORY, item_id))["quantity"] == 0
        customer = await repo.get(EntityType.CUSTOMER, customer_id)
        assert customer["net_value"] == Decimal("100.00")
        assert customer["purchase_count"] == 1

    async def test_failure_compensates_applied_ops(self):
        repo = MemoryRepository()
        _, item_id = await seed(repo, quantity=3)

        with pytest.raises(NotFoundError):
            await UnitOfWork(repo, "record_sale").extend(sale_ops(999, item_id)).commit()

        assert await repo.find_by(EntityType.SALE) == []
        assert (await repo.get(EntityType.INVENTORY, item_id))["quantity"] == 3

    async def test_postcondition_catches_unguarded_underflow(self):
        repo = MemoryRepository(enforce_guards=False)
        customer_id, item_id = await seed(repo, quantity=1)

        with pytest.raises(GuardViolationError) as exc_info:
            await UnitOfWork(repo, "record_sale").extend(
                sale_ops(customer_id, item_id, quantity=2)
            ).commit()

        assert exc_info.value.field == "quantity"
        assert (await repo.get(EntityType.INVENTORY, item_id))["quantity"] == 1
        assert await repo.find_by(EntityType.SALE) == []
        assert (await repo.get(EntityType.CUSTOMER, customer_id))["purchase_count"] == 0

    async def test_postcondition_checks_expect(self):
        repo = MemoryRepository(enforce_guards=False)
        service_id = await repo.insert(EntityType.SERVICE, {"status": "completed"})
        op = Write.update(
            EntityType.SERVICE,
            service_id,
            {"status": "on-hold"},
            expect={"status": "in-progress"},
        )

        with pytest.raises(GuardViolationError):
            await UnitOfWork(repo, "transition_service").add(op).commit()

        assert (await repo.get(EntityType.SERVICE, service_id))["status"] == "completed"

    async def test_commit_twice_rejected(self):
        uow = UnitOfWork(MemoryRepository(), "noop")
        await uow.commit()
        with pytest.raises(RuntimeError):
            await uow.commit()
        with pytest.raises(RuntimeError):
            uow.add(Write.delete(EntityType.SALE, 1))


class TestPartialFailure:
    async def test_failed_compensation_flags_rows(self):
        repo = FailingDeleteRepository()
        customer_id, item_id = await seed(repo, quantity=2)
        ops = sale_ops(customer_id, item_id)
        # Third op targets a missing customer so the batch fails after two writes
        ops[2] = Write.update(EntityType.CUSTOMER, 999, deltas={"purchase_count": 1})
        ops.append(Write.update(EntityType.CUSTOMER, customer_id, deltas={"purchase_count": 1}))

        with pytest.raises(PartialFailureError) as exc_info:
            await UnitOfWork(repo, "record_sale").extend(ops).commit()

        error = exc_info.value
        assert error.details["event"] == "record_sale"
        assert len(error.details["state"]["applied"]) == 2
        assert isinstance(error.__cause__, NotFoundError)

        item = await repo.get(EntityType.INVENTORY, item_id)
        assert item["quantity"] == 2
        assert item["needs_reconciliation"] is True
        assert (await repo.get(EntityType.CUSTOMER, customer_id))["needs_reconciliation"] is True
        # The orphaned sale row is still there for reconciliation to find
        assert len(await repo.find_by(EntityType.SALE)) == 1


class TestResultImages:
    async def test_update_result_has_before_and_after(self):
        repo = MemoryRepository()
        customer_id, _ = await seed(repo)
        op = Write.update(EntityType.CUSTOMER, customer_id, deltas={"purchase_count": 1})

        [result] = await UnitOfWork(repo, "touch").add(op).commit()

        assert isinstance(result, WriteResult)
        assert result.before["purchase_count"] == 0
        assert result.after["purchase_count"] == 1


@pytest.fixture
def captured(monkeypatch) -> LogCapture:
    """Route the unit of work logger through a stdlib-style bound logger."""
    capture = LogCapture()
    logger = structlog.wrap_logger(
        None, processors=[capture], wrapper_class=structlog.stdlib.BoundLogger
    )
    monkeypatch.setattr(unit_of_work_module, "logger", logger)
    return capture


class TestLogging:
    async def test_commit_logs_event_name(self, captured):
        repo = MemoryRepository()
        customer_id, item_id = await seed(repo, quantity=2)

        results = await UnitOfWork(repo, "record_sale").extend(
            sale_ops(customer_id, item_id)
        ).commit()

        assert len(results) == 3
        [entry] = [e for e in captured.entries if e["event"] == "uow_committed"]
        assert entry["uow_event"] == "record_sale"
        assert entry["ops"] == 3

    async def test_compensation_keeps_original_error(self, captured):
        repo = MemoryRepository(enforce_guards=False)
        customer_id, item_id = await seed(repo, quantity=1)

        with pytest.raises(GuardViolationError):
            await UnitOfWork(repo, "record_sale").extend(
                sale_ops(customer_id, item_id, quantity=2)
            ).commit()

        [entry] = [e for e in captured.entries if e["event"] == "uow_compensated"]
        assert entry["uow_event"] == "record_sale"
        assert (await repo.get(EntityType.INVENTORY, item_id))["quantity"] == 1

    async def test_partial_failure_logs_and_flags(self, captured):
        repo = FailingDeleteRepository()
        customer_id, item_id = await seed(repo, quantity=2)
        ops = sale_ops(customer_id, item_id)
        ops[2] = Write.update(EntityType.CUSTOMER, 999, deltas={"purchase_count": 1})

        with pytest.raises(PartialFailureError):
            await UnitOfWork(repo, "record_sale").extend(ops).commit()

        events = [e["event"] for e in captured.entries]
        assert "uow_compensation_failed" in events
        assert "flagged_for_reconciliation" in events
        assert {e["uow_event"] for e in captured.entries} == {"record_sale"}

"""
Unit of Work for one domain event.

Collects row writes in order and commits them as a group. On an atomic
backend that is a single ``run_atomic`` call. On a non-atomic backend the
writes are applied one at a time, each one re-validated against its own
row images, and a failure undoes the applied writes in reverse order.
"""

from typing import Any

from watchcraft.config import get_logger
from watchcraft.core.exceptions import BatchWriteError, PartialFailureError
from watchcraft.core.interfaces.repository import (
    EntityType,
    IRepository,
    Write,
    WriteKind,
    WriteResult,
)

logger = get_logger(__name__)

# Rows carrying aggregate fields; flagged when compensation fails
RECONCILED_ENTITIES = (EntityType.CUSTOMER, EntityType.INVENTORY)


class UnitOfWork:
    """
    Ordered group of writes that commit or fail together.

    Usage:
        uow = UnitOfWork(repository, "record_sale")
        uow.add(Write.insert(EntityType.SALE, row))
        uow.add(Write.update(EntityType.INVENTORY, item_id, deltas={"quantity": -1}))
        results = await uow.commit()
    """

    def __init__(self, repository: IRepository, event: str):
        self._repository = repository
        self.event = event
        self._ops: list[Write] = []
        self._committed = False

    @property
    def ops(self) -> list[Write]:
        return list(self._ops)

    def add(self, op: Write) -> "UnitOfWork":
        if self._committed:
            raise RuntimeError(f"Unit of work '{self.event}' already committed")
        self._ops.append(op)
        return self

    def extend(self, ops: list[Write]) -> "UnitOfWork":
        for op in ops:
            self.add(op)
        return self

    async def commit(self) -> list[WriteResult]:
        """
        Apply every collected write.

        Returns one ``WriteResult`` per op, in order. Re-raises the error of
        the failing op after the group has been rolled back or compensated.

        Raises:
            PartialFailureError: A compensating write failed; the touched
                aggregate rows are flagged ``needs_reconciliation``.
        """
        if self._committed:
            raise RuntimeError(f"Unit of work '{self.event}' already committed")
        self._committed = True
        if not self._ops:
            return []

        if self._repository.supports_atomic:
            results = await self._repository.run_atomic(list(self._ops))
        else:
            results = await self._commit_sequential()

        logger.debug(
            "uow_committed",
            uow_event=self.event,
            ops=len(results),
            atomic=self._repository.supports_atomic,
        )
        return results

    async def _commit_sequential(self) -> list[WriteResult]:
        applied: list[WriteResult] = []
        for op in self._ops:
            try:
                result = await self._apply_one(op)
            except BatchWriteError as e:
                await self._compensate(applied, e.cause)
                raise e.cause from None
            except Exception as e:
                await self._compensate(applied, e)
                raise

            applied.append(result)
            try:
                self._validate(op, result)
            except Exception as e:
                await self._compensate(applied, e)
                raise
        return applied

    async def _apply_one(self, op: Write) -> WriteResult:
        results = await self._repository.run_atomic([op])
        return results[0]

    @staticmethod
    def _validate(op: Write, result: WriteResult) -> None:
        """Postcondition check on the row images of one applied write."""
        if op.kind == WriteKind.INSERT:
            return
        op.check_expect(result.before or {})
        if op.kind == WriteKind.UPDATE:
            op.check_floors(result.after or {})

    async def _compensate(self, applied: list[WriteResult], cause: Exception) -> None:
        for result in reversed(applied):
            inverse = result.op.inverse(result)
            try:
                await self._apply_one(inverse)
            except Exception as e:
                error = e.cause if isinstance(e, BatchWriteError) else e
                state = self._state(applied)
                logger.error(
                    "uow_compensation_failed",
                    uow_event=self.event,
                    entity=result.op.entity.value,
                    entity_id=result.id,
                    before=result.before,
                    after=result.after,
                    cause=str(cause),
                    error=str(error),
                )
                await self._flag_for_reconciliation()
                raise PartialFailureError(
                    self.event,
                    f"could not undo {result.op.kind.value} on "
                    f"{result.op.entity.value} {result.id}: {error}",
                    state,
                ) from cause

        if applied:
            logger.warning(
                "uow_compensated",
                uow_event=self.event,
                undone=len(applied),
                cause=str(cause),
            )

    async def _flag_for_reconciliation(self) -> None:
        targets = {
            (op.entity, op.id)
            for op in self._ops
            if op.entity in RECONCILED_ENTITIES and op.id is not None
        }
        for entity, entity_id in sorted(targets, key=lambda t: (t[0].value, t[1])):
            try:
                await self._repository.update(
                    entity, entity_id, {"needs_reconciliation": True}
                )
            except Exception as e:
                logger.error(
                    "reconciliation_flag_failed",
                    uow_event=self.event,
                    entity=entity.value,
                    entity_id=entity_id,
                    error=str(e),
                )
            else:
                logger.warning(
                    "flagged_for_reconciliation",
                    uow_event=self.event,
                    entity=entity.value,
                    entity_id=entity_id,
                )

    @staticmethod
    def _state(applied: list[WriteResult]) -> dict[str, Any]:
        return {
            "applied": [
                {
                    "kind": r.op.kind.value,
                    "entity": r.op.entity.value,
                    "id": r.id,
                    "before": r.before,
                    "after": r.after,
                }
                for r in applied
            ]
        }

"""
In-memory document-store backend.

Models a store without multi-document transactions: every call yields to
the event loop (a simulated I/O boundary), single-row writes are atomic,
and ``run_atomic`` applies its ops one by one.
"""

import asyncio
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from watchcraft.config import get_logger
from watchcraft.core.exceptions import (
    BatchWriteError,
    ConflictError,
    NotFoundError,
    ReferentialIntegrityError,
    WatchcraftError,
)
from watchcraft.core.interfaces.repository import (
    EntityType,
    IRepository,
    Row,
    Write,
    WriteKind,
    WriteResult,
)
from watchcraft.infrastructure.storage.schema import (
    COLUMN_DEFAULTS,
    REFERENCES,
    TIMESTAMPED,
    UNIQUE_FIELDS,
)

logger = get_logger(__name__)


class MemoryRepository(IRepository):
    """
    Non-atomic repository held in process memory.

    With ``enforce_guards=False`` writes ignore ``floors`` and ``expect``
    the way a plain increment on a document store does; callers then rely
    on post-write validation.
    """

    def __init__(self, enforce_guards: bool = True, latency: float = 0.0) -> None:
        self.enforce_guards = enforce_guards
        self._latency = latency
        self._tables: dict[EntityType, dict[int, Row]] = {e: {} for e in EntityType}
        self._next_id: dict[EntityType, int] = {e: 1 for e in EntityType}
        self._closed = False

    @property
    def supports_atomic(self) -> bool:
        return False

    async def _io(self) -> None:
        """Suspension point standing in for a network round trip."""
        await asyncio.sleep(self._latency)

    async def get(self, entity: EntityType, entity_id: int) -> Row | None:
        await self._io()
        row = self._tables[entity].get(entity_id)
        return dict(row) if row is not None else None

    async def find_by(
        self,
        entity: EntityType,
        predicate: Callable[[Row], bool] | None = None,
        **equals: Any,
    ) -> list[Row]:
        await self._io()
        rows = []
        for entity_id in sorted(self._tables[entity]):
            row = self._tables[entity][entity_id]
            if any(row.get(name) != value for name, value in equals.items()):
                continue
            if predicate is not None and not predicate(row):
                continue
            rows.append(dict(row))
        return rows

    async def insert(self, entity: EntityType, fields: Mapping[str, Any]) -> int:
        await self._io()
        result = self._apply(Write.insert(entity, fields))
        return result.id  # type: ignore[return-value]

    async def update(
        self, entity: EntityType, entity_id: int, patch: Mapping[str, Any]
    ) -> int:
        await self._io()
        if entity_id not in self._tables[entity]:
            return 0
        self._apply(Write.update(entity, entity_id, patch))
        return 1

    async def delete(self, entity: EntityType, entity_id: int) -> int:
        await self._io()
        if entity_id not in self._tables[entity]:
            return 0
        self._apply(Write.delete(entity, entity_id))
        return 1

    async def run_atomic(self, ops: list[Write]) -> list[WriteResult]:
        results: list[WriteResult] = []
        for index, op in enumerate(ops):
            await self._io()
            try:
                results.append(self._apply(op))
            except WatchcraftError as e:
                logger.debug(
                    "memory_batch_stopped",
                    failed_index=index,
                    applied=len(results),
                    error=e.code,
                )
                raise BatchWriteError(results, index, e) from e
        return results

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info(
                "memory_repository_closed",
                rows=sum(len(t) for t in self._tables.values()),
            )

    # Single-row writes. No awaits in here, so each one is atomic.

    def _apply(self, op: Write) -> WriteResult:
        if op.kind == WriteKind.INSERT:
            return self._apply_insert(op)
        if op.kind == WriteKind.UPDATE:
            return self._apply_update(op)
        return self._apply_delete(op)

    def _apply_insert(self, op: Write) -> WriteResult:
        table = self._tables[op.entity]
        row = {**COLUMN_DEFAULTS.get(op.entity, {}), **op.fields}
        now = datetime.utcnow()
        row.setdefault("created_at", now)
        if op.entity in TIMESTAMPED:
            row.setdefault("updated_at", now)
        entity_id = row.get("id") or self._next_id[op.entity]
        if entity_id in table:
            raise ConflictError(op.entity.label, "id", entity_id)
        row["id"] = entity_id
        self._check_unique(op.entity, row, exclude_id=None)
        table[entity_id] = row
        self._next_id[op.entity] = max(self._next_id[op.entity], entity_id + 1)
        return WriteResult(op, entity_id, 1, before=None, after=dict(row))

    def _apply_update(self, op: Write) -> WriteResult:
        table = self._tables[op.entity]
        before = table.get(op.id)  # type: ignore[arg-type]
        if before is None:
            raise NotFoundError(op.entity.label, op.id)
        if self.enforce_guards:
            op.check_expect(before)
        after = op.apply_to(before)
        if self.enforce_guards:
            op.check_floors(after)
        self._check_unique(op.entity, after, exclude_id=op.id)
        if op.entity in TIMESTAMPED:
            after["updated_at"] = datetime.utcnow()
        table[op.id] = after  # type: ignore[index]
        return WriteResult(op, op.id, 1, before=dict(before), after=dict(after))

    def _apply_delete(self, op: Write) -> WriteResult:
        table = self._tables[op.entity]
        before = table.get(op.id)  # type: ignore[arg-type]
        if before is None:
            raise NotFoundError(op.entity.label, op.id)
        if self.enforce_guards:
            op.check_expect(before)
        self._check_references(op.entity, op.id)  # type: ignore[arg-type]
        del table[op.id]  # type: ignore[arg-type]
        return WriteResult(op, op.id, 1, before=dict(before), after=None)

    def _check_unique(self, entity: EntityType, row: Row, exclude_id: int | None) -> None:
        for name in UNIQUE_FIELDS.get(entity, ()):
            value = row.get(name)
            if value is None:
                continue
            for other_id, other in self._tables[entity].items():
                if other_id != exclude_id and other.get(name) == value:
                    raise ConflictError(entity.label, name, value)

    def _check_references(self, entity: EntityType, entity_id: int) -> None:
        referenced_by: dict[str, int] = {}
        for child, column in REFERENCES.get(entity, ()):
            count = sum(
                1 for row in self._tables[child].values() if row.get(column) == entity_id
            )
            if count:
                referenced_by[child.value] = count
        if referenced_by:
            raise ReferentialIntegrityError(entity.label, entity_id, referenced_by)

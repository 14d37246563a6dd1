"""SQLite implementation of the repository contract."""

from collections.abc import Callable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

import aiosqlite

from watchcraft.config import get_logger
from watchcraft.core.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    ReferentialIntegrityError,
)
from watchcraft.core.interfaces.repository import (
    EntityType,
    IRepository,
    Row,
    Write,
    WriteKind,
    WriteResult,
)
from watchcraft.infrastructure.storage.schema import REFERENCES, TIMESTAMPED
from watchcraft.infrastructure.storage.sqlite.connection import ConnectionPool

logger = get_logger(__name__)


def _to_db(value: Any) -> Any:
    """Convert a Python value to its column representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    return value


class SQLiteRepository(IRepository):
    """
    Repository backed by SQLite.

    ``run_atomic`` executes every op on one connection inside a single
    ``BEGIN IMMEDIATE`` transaction, so guards are evaluated under the
    write lock and a failure rolls the whole batch back.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool
        self._columns: dict[EntityType, frozenset[str]] = {}

    @property
    def supports_atomic(self) -> bool:
        return True

    async def get(self, entity: EntityType, entity_id: int) -> Row | None:
        async with self._pool.acquire() as conn:
            return await self._fetch(conn, entity, entity_id)

    async def find_by(
        self,
        entity: EntityType,
        predicate: Callable[[Row], bool] | None = None,
        **equals: Any,
    ) -> list[Row]:
        async with self._pool.acquire() as conn:
            columns = await self._table_columns(conn, entity)
            unknown = set(equals) - columns
            if unknown:
                raise DatabaseError("find_by", f"unknown columns {sorted(unknown)}")

            sql = f"SELECT * FROM {entity.value}"
            if equals:
                sql += " WHERE " + " AND ".join(f"{name} = ?" for name in equals)
            sql += " ORDER BY id"

            cursor = await conn.execute(sql, tuple(_to_db(v) for v in equals.values()))
            rows = [dict(row) for row in await cursor.fetchall()]

        if predicate is not None:
            rows = [row for row in rows if predicate(row)]
        return rows

    async def insert(self, entity: EntityType, fields: Mapping[str, Any]) -> int:
        async with self._pool.transaction() as conn:
            result = await self._apply(conn, Write.insert(entity, fields))
        return result.id  # type: ignore[return-value]

    async def update(
        self, entity: EntityType, entity_id: int, patch: Mapping[str, Any]
    ) -> int:
        async with self._pool.transaction() as conn:
            if await self._fetch(conn, entity, entity_id) is None:
                return 0
            await self._apply(conn, Write.update(entity, entity_id, patch))
        return 1

    async def delete(self, entity: EntityType, entity_id: int) -> int:
        async with self._pool.transaction() as conn:
            if await self._fetch(conn, entity, entity_id) is None:
                return 0
            await self._apply(conn, Write.delete(entity, entity_id))
        return 1

    async def run_atomic(self, ops: list[Write]) -> list[WriteResult]:
        results: list[WriteResult] = []
        async with self._pool.transaction() as conn:
            for op in ops:
                results.append(await self._apply(conn, op))
        logger.debug("sqlite_batch_committed", ops=len(ops))
        return results

    async def close(self) -> None:
        await self._pool.close()

    async def _apply(self, conn: aiosqlite.Connection, op: Write) -> WriteResult:
        try:
            if op.kind == WriteKind.INSERT:
                return await self._apply_insert(conn, op)
            if op.kind == WriteKind.UPDATE:
                return await self._apply_update(conn, op)
            return await self._apply_delete(conn, op)
        except aiosqlite.IntegrityError as e:
            raise self._translate_integrity_error(op, e) from e
        except aiosqlite.Error as e:
            raise DatabaseError(f"{op.kind.value} {op.entity.value}", str(e)) from e

    async def _apply_insert(self, conn: aiosqlite.Connection, op: Write) -> WriteResult:
        columns = await self._table_columns(conn, op.entity)
        fields = {k: v for k, v in op.fields.items() if k in columns}
        names = ", ".join(fields)
        placeholders = ", ".join("?" for _ in fields)
        cursor = await conn.execute(
            f"INSERT INTO {op.entity.value} ({names}) VALUES ({placeholders})",
            tuple(_to_db(v) for v in fields.values()),
        )
        entity_id = fields.get("id") or cursor.lastrowid
        after = await self._fetch(conn, op.entity, entity_id)
        return WriteResult(op, entity_id, 1, before=None, after=after)

    async def _apply_update(self, conn: aiosqlite.Connection, op: Write) -> WriteResult:
        before = await self._fetch(conn, op.entity, op.id)  # type: ignore[arg-type]
        if before is None:
            raise NotFoundError(op.entity.label, op.id)
        op.check_expect(before)
        after = op.apply_to(before)
        op.check_floors(after)

        changed = {name: after[name] for name in after if after[name] != before.get(name)}
        if op.entity in TIMESTAMPED:
            changed["updated_at"] = datetime.utcnow()
        if changed:
            assignments = ", ".join(f"{name} = ?" for name in changed)
            await conn.execute(
                f"UPDATE {op.entity.value} SET {assignments} WHERE id = ?",
                (*(_to_db(v) for v in changed.values()), op.id),
            )
        after = await self._fetch(conn, op.entity, op.id)  # type: ignore[arg-type]
        return WriteResult(op, op.id, 1, before=before, after=after)

    async def _apply_delete(self, conn: aiosqlite.Connection, op: Write) -> WriteResult:
        before = await self._fetch(conn, op.entity, op.id)  # type: ignore[arg-type]
        if before is None:
            raise NotFoundError(op.entity.label, op.id)
        op.check_expect(before)

        referenced_by: dict[str, int] = {}
        for child, column in REFERENCES.get(op.entity, ()):
            cursor = await conn.execute(
                f"SELECT COUNT(*) FROM {child.value} WHERE {column} = ?", (op.id,)
            )
            count = (await cursor.fetchone())[0]
            if count:
                referenced_by[child.value] = count
        if referenced_by:
            raise ReferentialIntegrityError(op.entity.label, op.id, referenced_by)

        await conn.execute(f"DELETE FROM {op.entity.value} WHERE id = ?", (op.id,))
        return WriteResult(op, op.id, 1, before=before, after=None)

    async def _fetch(
        self, conn: aiosqlite.Connection, entity: EntityType, entity_id: int
    ) -> Row | None:
        cursor = await conn.execute(
            f"SELECT * FROM {entity.value} WHERE id = ?", (entity_id,)
        )
        row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def _table_columns(
        self, conn: aiosqlite.Connection, entity: EntityType
    ) -> frozenset[str]:
        if entity not in self._columns:
            cursor = await conn.execute(f"PRAGMA table_info({entity.value})")
            self._columns[entity] = frozenset(row["name"] for row in await cursor.fetchall())
        return self._columns[entity]

    @staticmethod
    def _translate_integrity_error(op: Write, error: aiosqlite.IntegrityError) -> Exception:
        """Map UNIQUE / FOREIGN KEY failures onto domain errors."""
        message = str(error)
        if message.startswith("UNIQUE constraint failed:"):
            column = message.split(":", 1)[1].strip().split(",")[0].split(".")[-1]
            return ConflictError(op.entity.label, column, op.fields.get(column))
        if "FOREIGN KEY constraint failed" in message and op.kind == WriteKind.DELETE:
            return ReferentialIntegrityError(op.entity.label, op.id, {"rows": 1})
        return DatabaseError(f"{op.kind.value} {op.entity.value}", message)

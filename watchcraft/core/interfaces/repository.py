"""
Repository contract and write operations.

Rows are plain dicts keyed by column name. A ``Write`` describes one
row-level change; the guard and compensation rules live here so every
backend and the unit of work evaluate them the same way.
"""

from abc import abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from watchcraft.core.exceptions import GuardViolationError
from watchcraft.core.interfaces.lifecycle import Closeable

Row = dict[str, Any]


class EntityType(str, Enum):
    """Persisted entity collections; values are table names."""

    CUSTOMER = "customers"
    INVENTORY = "inventory"
    SALE = "sales"
    SERVICE = "services"
    INVOICE = "invoices"
    EXPENSE = "expenses"

    @property
    def label(self) -> str:
        return {
            EntityType.CUSTOMER: "Customer",
            EntityType.INVENTORY: "InventoryItem",
            EntityType.SALE: "Sale",
            EntityType.SERVICE: "Service",
            EntityType.INVOICE: "Invoice",
            EntityType.EXPENSE: "Expense",
        }[self]


class WriteKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Write:
    """
    One row-level write.

    ``fields`` are absolute assignments, ``deltas`` are added to the stored
    value at write time. ``floors`` are lower bounds the row must satisfy
    after the write; ``expect`` are values it must hold before it.
    ``derive`` returns extra assignments computed from the post-write row.
    """

    kind: WriteKind
    entity: EntityType
    id: int | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)
    deltas: Mapping[str, Any] = field(default_factory=dict)
    floors: Mapping[str, Any] = field(default_factory=dict)
    expect: Mapping[str, Any] = field(default_factory=dict)
    derive: Callable[[Row], Row] | None = None

    @classmethod
    def insert(cls, entity: EntityType, fields: Mapping[str, Any]) -> "Write":
        return cls(WriteKind.INSERT, entity, fields=dict(fields))

    @classmethod
    def update(
        cls,
        entity: EntityType,
        entity_id: int,
        fields: Mapping[str, Any] | None = None,
        *,
        deltas: Mapping[str, Any] | None = None,
        floors: Mapping[str, Any] | None = None,
        expect: Mapping[str, Any] | None = None,
        derive: Callable[[Row], Row] | None = None,
    ) -> "Write":
        return cls(
            WriteKind.UPDATE,
            entity,
            id=entity_id,
            fields=dict(fields or {}),
            deltas=dict(deltas or {}),
            floors=dict(floors or {}),
            expect=dict(expect or {}),
            derive=derive,
        )

    @classmethod
    def delete(
        cls,
        entity: EntityType,
        entity_id: int,
        expect: Mapping[str, Any] | None = None,
    ) -> "Write":
        return cls(WriteKind.DELETE, entity, id=entity_id, expect=dict(expect or {}))

    def apply_to(self, row: Row) -> Row:
        """Return the post-write image of ``row`` (updates only)."""
        after = dict(row)
        after.update(self.fields)
        for name, delta in self.deltas.items():
            after[name] = (after.get(name) or 0) + delta
        if self.derive is not None:
            after.update(self.derive(after))
        return after

    def check_expect(self, before: Row) -> None:
        for name, expected in self.expect.items():
            if before.get(name) != expected:
                raise GuardViolationError(
                    self.entity.label,
                    self.id,
                    name,
                    before.get(name),
                    f"== {expected}",
                    op=self,
                )

    def check_floors(self, after: Row) -> None:
        for name, floor in self.floors.items():
            value = after.get(name)
            if value is None or value < floor:
                raise GuardViolationError(
                    self.entity.label, self.id, name, value, f">= {floor}", op=self
                )

    def inverse(self, result: "WriteResult") -> "Write":
        """Compensating write that undoes ``result``."""
        if self.kind == WriteKind.INSERT:
            return Write.delete(self.entity, result.id)  # type: ignore[arg-type]
        if self.kind == WriteKind.DELETE:
            return Write.insert(self.entity, result.before or {})
        before = result.before or {}
        return Write.update(
            self.entity,
            result.id,  # type: ignore[arg-type]
            {name: before.get(name) for name in self.fields},
            deltas={name: -delta for name, delta in self.deltas.items()},
            derive=self.derive,
        )


@dataclass
class WriteResult:
    """Outcome of one write, with row images for compensation."""

    op: Write
    id: int | None
    changed: int
    before: Row | None = None
    after: Row | None = None


class IRepository(Closeable):
    """
    Per-entity persistence.

    Owns field storage and uniqueness constraints only; no business rules.
    """

    @property
    @abstractmethod
    def supports_atomic(self) -> bool:
        """Whether ``run_atomic`` is all-or-nothing on this backend."""
        pass

    @abstractmethod
    async def get(self, entity: EntityType, entity_id: int) -> Row | None:
        """Get one row by id."""
        pass

    @abstractmethod
    async def find_by(
        self,
        entity: EntityType,
        predicate: Callable[[Row], bool] | None = None,
        **equals: Any,
    ) -> list[Row]:
        """Rows matching all equality filters and the optional predicate, by id."""
        pass

    @abstractmethod
    async def insert(self, entity: EntityType, fields: Mapping[str, Any]) -> int:
        """Insert a row and return its id."""
        pass

    @abstractmethod
    async def update(
        self, entity: EntityType, entity_id: int, patch: Mapping[str, Any]
    ) -> int:
        """Assign fields on one row; returns the number of rows changed."""
        pass

    @abstractmethod
    async def delete(self, entity: EntityType, entity_id: int) -> int:
        """Delete one row; returns the number of rows removed."""
        pass

    @abstractmethod
    async def run_atomic(self, ops: list[Write]) -> list[WriteResult]:
        """
        Apply ``ops`` in order.

        All-or-nothing when ``supports_atomic``; otherwise sequential and a
        failure raises ``BatchWriteError`` with the results already applied.
        """
        pass

"""Pytest configuration and fixtures."""

import itertools
from collections.abc import AsyncGenerator
from decimal import Decimal
from pathlib import Path

import pytest

from watchcraft.config.settings import DocumentSettings
from watchcraft.core.entities import Customer, InventoryItem
from watchcraft.core.interfaces import IRepository
from watchcraft.core.services import AggregateConsistencyEngine, DocumentDispatcher
from watchcraft.infrastructure.cache import EntityCache
from watchcraft.infrastructure.documents import RepositoryInvoiceGenerator
from watchcraft.infrastructure.storage import (
    ConnectionPool,
    MemoryRepository,
    SQLiteRepository,
    run_migrations,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingAuditLog:
    """Audit log that keeps records in a list."""

    def __init__(self):
        self.records: list[dict] = []

    def log(self, actor_username, actor_role, action, category, details):
        self.records.append(
            {
                "actor": actor_username,
                "role": actor_role,
                "action": action,
                "category": category,
                "details": details,
            }
        )

    @property
    def actions(self) -> list[str]:
        return [r["action"] for r in self.records]


class RecordingNotifier:
    """Refresh notifier that keeps the signalled entities."""

    def __init__(self):
        self.entities: list = []

    def notify(self, entity) -> None:
        self.entities.append(entity)


@pytest.fixture
def fast_documents() -> DocumentSettings:
    """Document settings without backoff delays."""
    return DocumentSettings(timeout=1.0, max_retries=2, retry_delay=0.0)


@pytest.fixture
async def sqlite_repo(tmp_path: Path) -> AsyncGenerator[SQLiteRepository, None]:
    """Migrated SQLite repository on a temporary database."""
    db_path = tmp_path / "watchcraft_test.db"
    await run_migrations(db_path)
    repo = SQLiteRepository(ConnectionPool(db_path, pool_size=3, busy_timeout=5000))
    yield repo
    await repo.close()


@pytest.fixture
async def memory_repo() -> AsyncGenerator[MemoryRepository, None]:
    repo = MemoryRepository()
    yield repo
    await repo.close()


@pytest.fixture(params=["memory", "sqlite"])
async def repo(request, tmp_path: Path) -> AsyncGenerator[IRepository, None]:
    """Every repository backend in turn."""
    if request.param == "memory":
        repository: IRepository = MemoryRepository()
    else:
        db_path = tmp_path / "watchcraft_param.db"
        await run_migrations(db_path)
        repository = SQLiteRepository(ConnectionPool(db_path, pool_size=3))
    yield repository
    await repository.close()


@pytest.fixture
def audit_log() -> RecordingAuditLog:
    return RecordingAuditLog()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def cache() -> EntityCache:
    return EntityCache()


def build_engine(
    repository: IRepository,
    cache: EntityCache | None = None,
    generator=None,
    audit_log=None,
    notifier=None,
    documents: DocumentSettings | None = None,
) -> AggregateConsistencyEngine:
    cache = cache or EntityCache()
    dispatcher = DocumentDispatcher(
        generator or RepositoryInvoiceGenerator(repository),
        repository,
        cache=cache,
        settings=documents or DocumentSettings(timeout=1.0, max_retries=2, retry_delay=0.0),
    )
    return AggregateConsistencyEngine(
        repository, cache, dispatcher, audit_log=audit_log, notifier=notifier
    )


@pytest.fixture
def engine(repo, cache, audit_log, notifier) -> AggregateConsistencyEngine:
    """Engine over each backend with a real invoice generator."""
    return build_engine(repo, cache=cache, audit_log=audit_log, notifier=notifier)


@pytest.fixture
def make_customer():
    """Factory registering customers with unique contact details."""
    seq = itertools.count(1)

    async def make(
        engine: AggregateConsistencyEngine, name: str = "Asha Rao"
    ) -> Customer:
        n = next(seq)
        return await engine.register_customer(
            {
                "name": name,
                "email": f"customer{n}@example.com",
                "phone": f"98765{n:05d}",
            }
        )

    return make


@pytest.fixture
def make_item():
    """Factory adding stock lines with unique codes."""
    seq = itertools.count(1)

    async def make(
        engine: AggregateConsistencyEngine,
        quantity: int = 5,
        price: str | Decimal = "100.00",
    ) -> InventoryItem:
        return await engine.add_inventory_item(
            {
                "code": f"W-{next(seq):04d}",
                "brand": "Titan",
                "model": "Edge",
                "price": price,
                "quantity": quantity,
            }
        )

    return make


@pytest.fixture
def service_data():
    def make(customer_id: int, cost: str = "500.00") -> dict:
        return {
            "customer_id": customer_id,
            "watch_name": "Seamaster",
            "brand": "Omega",
            "model": "300M",
            "issue": "Runs slow",
            "cost": cost,
        }

    return make


@pytest.fixture
def completion():
    def make(final_cost: str = "750.00", warranty: int = 6) -> dict:
        return {
            "completion_description": "Serviced movement, replaced gasket",
            "final_cost": final_cost,
            "warranty_period": warranty,
        }

    return make


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine_factory():
    """``build_engine`` for tests that need a custom repository or generator."""
    return build_engine

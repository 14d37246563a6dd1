"""
Service factory functions for dependency injection.

Wires the storage backend, cache, document generator and observers to the
engine. Callers build one ``EngineContainer`` per process and close it on
shutdown.
"""

from dataclasses import dataclass, field

from watchcraft.config import Settings, get_logger, get_settings
from watchcraft.core.interfaces import (
    Closeable,
    IAuditLog,
    IDocumentGenerator,
    IRefreshNotifier,
    IRepository,
)
from watchcraft.core.services import AggregateConsistencyEngine, DocumentDispatcher

logger = get_logger(__name__)


@dataclass
class EngineContainer:
    """Engine plus the collaborators it owns."""

    engine: AggregateConsistencyEngine
    repository: IRepository
    dispatcher: DocumentDispatcher
    closeables: list[Closeable] = field(default_factory=list)

    async def close(self) -> None:
        """Close owned components, last created first."""
        for component in reversed(self.closeables):
            try:
                await component.close()
            except Exception as e:
                logger.error(
                    "component_close_failed",
                    component=type(component).__name__,
                    error=str(e),
                )
        self.closeables.clear()
        logger.info("engine_container_closed")


async def create_repository(settings: Settings | None = None) -> IRepository:
    """
    Build the configured repository.

    The SQLite backend is migrated before it is returned.
    """
    settings = settings or get_settings()
    storage = settings.storage

    if storage.backend == "memory":
        from watchcraft.infrastructure.storage.memory import MemoryRepository

        return MemoryRepository()

    from watchcraft.infrastructure.storage.sqlite import (
        ConnectionPool,
        SQLiteRepository,
        run_migrations,
    )

    await run_migrations(storage.db_path)
    pool = ConnectionPool(
        storage.db_path,
        pool_size=storage.pool_size,
        busy_timeout=storage.busy_timeout,
    )
    await pool.initialize()
    return SQLiteRepository(pool)


async def create_engine(
    settings: Settings | None = None,
    repository: IRepository | None = None,
    generator: IDocumentGenerator | None = None,
    audit_log: IAuditLog | None = None,
    notifier: IRefreshNotifier | None = None,
) -> EngineContainer:
    """
    Create an engine with its collaborators.

    Creates infrastructure dependencies if not provided. Only components
    created here are closed by the container.

    Args:
        settings: Optional settings override
        repository: Optional repository override
        generator: Optional document generator override
        audit_log: Optional audit log override
        notifier: Optional refresh notifier override

    Returns:
        Configured EngineContainer
    """
    # Lazy import infrastructure to avoid circular imports
    from watchcraft.infrastructure.cache import EntityCache
    from watchcraft.infrastructure.documents import RepositoryInvoiceGenerator
    from watchcraft.infrastructure.observers import (
        LoggingRefreshNotifier,
        StructlogAuditLog,
    )

    settings = settings or get_settings()
    closeables: list[Closeable] = []

    if repository is None:
        repository = await create_repository(settings)
        closeables.append(repository)

    cache = EntityCache.from_settings(settings.cache)
    closeables.append(cache)

    dispatcher = DocumentDispatcher(
        generator or RepositoryInvoiceGenerator(repository),
        repository,
        cache=cache,
        settings=settings.documents,
    )
    engine = AggregateConsistencyEngine(
        repository,
        cache,
        dispatcher,
        audit_log=audit_log or StructlogAuditLog(),
        notifier=notifier or LoggingRefreshNotifier(),
    )

    logger.info(
        "engine_created",
        backend=type(repository).__name__,
        atomic=repository.supports_atomic,
    )
    return EngineContainer(
        engine=engine,
        repository=repository,
        dispatcher=dispatcher,
        closeables=closeables,
    )

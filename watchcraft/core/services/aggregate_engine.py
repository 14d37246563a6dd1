"""
Aggregate consistency engine.

Every mutating business event goes through here. The engine validates the
input, builds the event's row writes in a fixed order (transaction row
first, then aggregate rows) and commits them through a ``UnitOfWork``.
After the commit it invalidates caches, audits, notifies and asks the
dispatcher for the event's document.

Aggregates are maintained incrementally with write-time deltas, so two
events touching the same customer or item never overwrite each other's
contribution. ``recompute_customer_net_value`` rebuilds a customer's
aggregates from source rows when drift is suspected.
"""

from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from typing import Any

from watchcraft.config import get_logger
from watchcraft.core.entities.customer import Customer, CustomerAggregates
from watchcraft.core.entities.inputs import (
    CustomerInput,
    InventoryItemInput,
    SaleInput,
    ServiceCompletion,
    ServiceInput,
    parse_input,
)
from watchcraft.core.entities.inventory import InventoryItem, status_for_quantity
from watchcraft.core.entities.invoice import DocumentKind, DocumentStatus
from watchcraft.core.entities.money import ZERO, to_money
from watchcraft.core.entities.sale import Sale
from watchcraft.core.entities.service import Service, ServiceStatus
from watchcraft.core.exceptions import (
    ConflictError,
    GuardViolationError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ReferentialIntegrityError,
    ValidationError,
    WatchcraftError,
)
from watchcraft.core.interfaces.cache import IEntityCache
from watchcraft.core.interfaces.collaborators import (
    SYSTEM_ACTOR,
    Actor,
    IAuditLog,
    IRefreshNotifier,
)
from watchcraft.core.interfaces.repository import (
    EntityType,
    IRepository,
    Row,
    Write,
    WriteKind,
    WriteResult,
)
from watchcraft.core.services.document_dispatcher import DocumentDispatcher
from watchcraft.core.services.service_lifecycle import ServiceLifecycle
from watchcraft.core.services.unit_of_work import UnitOfWork

logger = get_logger(__name__)


def derive_item_status(row: Row) -> Row:
    """Recompute the availability flag from the post-write quantity."""
    return {"status": status_for_quantity(row.get("quantity") or 0)}


def _row(model: Any) -> Row:
    return model.model_dump(exclude={"id"})


class AggregateConsistencyEngine:
    """
    Keeps customer and stock aggregates consistent with sales and services.

    The engine is the only writer of ``net_value``, ``purchase_count``,
    ``service_count``, item ``quantity`` and item ``status``.
    """

    def __init__(
        self,
        repository: IRepository,
        cache: IEntityCache,
        dispatcher: DocumentDispatcher,
        audit_log: IAuditLog | None = None,
        notifier: IRefreshNotifier | None = None,
        lifecycle: ServiceLifecycle | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._repository = repository
        self._cache = cache
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._notifier = notifier
        self._lifecycle = lifecycle or ServiceLifecycle()
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _load(self, entity: EntityType, entity_id: int) -> Row:
        row = await self._repository.get(entity, entity_id)
        if row is None:
            raise NotFoundError(entity.label, entity_id)
        return row

    async def get_customer(self, customer_id: int) -> Customer:
        """Customer by id, read through the cache."""

        async def load() -> Customer | None:
            row = await self._repository.get(EntityType.CUSTOMER, customer_id)
            return Customer.model_validate(row) if row is not None else None

        customer = await self._cache.get_or_load(
            EntityType.CUSTOMER, f"customer:{customer_id}", load
        )
        if customer is None:
            raise NotFoundError(EntityType.CUSTOMER.label, customer_id)
        return customer

    async def get_customer_aggregates(self, customer_id: int) -> CustomerAggregates:
        """Aggregate fields of one customer, read through the cache."""

        async def load() -> CustomerAggregates | None:
            row = await self._repository.get(EntityType.CUSTOMER, customer_id)
            if row is None:
                return None
            return CustomerAggregates(
                customer_id=customer_id,
                purchase_count=row["purchase_count"],
                service_count=row["service_count"],
                net_value=to_money(row["net_value"]),
                needs_reconciliation=bool(row.get("needs_reconciliation")),
            )

        aggregates = await self._cache.get_or_load(
            EntityType.CUSTOMER, f"aggregates:{customer_id}", load
        )
        if aggregates is None:
            raise NotFoundError(EntityType.CUSTOMER.label, customer_id)
        return aggregates

    async def get_inventory_item(self, item_id: int) -> InventoryItem:
        """Inventory item by id, read through the cache."""

        async def load() -> InventoryItem | None:
            row = await self._repository.get(EntityType.INVENTORY, item_id)
            return InventoryItem.model_validate(row) if row is not None else None

        item = await self._cache.get_or_load(EntityType.INVENTORY, f"item:{item_id}", load)
        if item is None:
            raise NotFoundError(EntityType.INVENTORY.label, item_id)
        return item

    # ------------------------------------------------------------------
    # Customers and stock
    # ------------------------------------------------------------------

    async def register_customer(
        self, customer_input: CustomerInput | dict[str, Any], actor: Actor | None = None
    ) -> Customer:
        """Create a customer with zeroed aggregates."""
        data = parse_input(CustomerInput, customer_input)
        customer = Customer(**data.model_dump())

        customer.id = await self._repository.insert(EntityType.CUSTOMER, _row(customer))

        logger.info("customer_registered", customer_id=customer.id)
        self._after_commit(
            {EntityType.CUSTOMER},
            actor,
            "customer_registered",
            "customers",
            {"customer_id": customer.id, "name": customer.name},
        )
        return customer

    async def delete_customer(self, customer_id: int, actor: Actor | None = None) -> None:
        """
        Delete a customer with no sales or services.

        Raises:
            ReferentialIntegrityError: The customer still has sales or services.
        """
        await self._load(EntityType.CUSTOMER, customer_id)

        referenced_by: dict[str, int] = {}
        for entity in (EntityType.SALE, EntityType.SERVICE):
            rows = await self._repository.find_by(entity, customer_id=customer_id)
            if rows:
                referenced_by[entity.value] = len(rows)
        if referenced_by:
            raise ReferentialIntegrityError(
                EntityType.CUSTOMER.label, customer_id, referenced_by
            )

        # The store re-checks references at write time
        uow = UnitOfWork(self._repository, "delete_customer")
        uow.add(Write.delete(EntityType.CUSTOMER, customer_id))
        await self._commit(uow)

        logger.info("customer_deleted", customer_id=customer_id)
        self._after_commit(
            {EntityType.CUSTOMER},
            actor,
            "customer_deleted",
            "customers",
            {"customer_id": customer_id},
        )

    async def add_inventory_item(
        self, item_input: InventoryItemInput | dict[str, Any], actor: Actor | None = None
    ) -> InventoryItem:
        """Create a stock line; status is derived from the opening quantity."""
        data = parse_input(InventoryItemInput, item_input)
        item = InventoryItem(**data.model_dump())

        item.id = await self._repository.insert(EntityType.INVENTORY, _row(item))

        logger.info("inventory_item_added", item_id=item.id, code=item.code)
        self._after_commit(
            {EntityType.INVENTORY},
            actor,
            "inventory_item_added",
            "inventory",
            {"item_id": item.id, "code": item.code, "quantity": item.quantity},
        )
        return item

    async def adjust_stock(
        self,
        item_id: int,
        delta: int,
        reason: str,
        actor: Actor | None = None,
    ) -> InventoryItem:
        """
        Restock (positive delta) or write off (negative delta) an item.

        Goes through the same non-negative guard as sales and clears the
        item's reconciliation flag.

        Raises:
            ValidationError: Zero delta or empty reason.
            InsufficientStockError: A write-off larger than the stock.
        """
        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            raise ValidationError("delta", "must be a non-zero integer", delta)
        if not reason or not reason.strip():
            raise ValidationError("reason", "a reason is required")

        item = InventoryItem.model_validate(await self._load(EntityType.INVENTORY, item_id))
        if item.quantity + delta < 0:
            raise InsufficientStockError(item_id, -delta, item.quantity)

        uow = UnitOfWork(self._repository, "adjust_stock")
        uow.add(self._stock_write(item_id, delta, {"needs_reconciliation": False}))
        results = await self._commit(uow)

        adjusted = InventoryItem.model_validate(results[0].after)
        logger.info(
            "stock_adjusted",
            item_id=item_id,
            delta=delta,
            quantity=adjusted.quantity,
            reason=reason,
        )
        self._after_commit(
            {EntityType.INVENTORY},
            actor,
            "stock_adjusted",
            "inventory",
            {"item_id": item_id, "delta": delta, "reason": reason},
        )
        return adjusted

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    async def record_sale(
        self, sale_input: SaleInput | dict[str, Any], actor: Actor | None = None
    ) -> Sale:
        """
        Record a sale.

        Writes, in order: the Sale row, the item's stock decrement and the
        customer's aggregates. Then dispatches the sales invoice.

        Raises:
            ValidationError: Bad input.
            NotFoundError: Unknown customer or item.
            InsufficientStockError: Not enough stock, checked again at write time.
        """
        data = parse_input(SaleInput, sale_input)
        await self._load(EntityType.CUSTOMER, data.customer_id)
        item = InventoryItem.model_validate(
            await self._load(EntityType.INVENTORY, data.inventory_id)
        )

        sale = self._build_sale(data, item)
        if item.quantity < sale.quantity:
            raise InsufficientStockError(item.id, sale.quantity, item.quantity)

        uow = UnitOfWork(self._repository, "record_sale")
        uow.extend(self._sale_record_ops(sale))
        results = await self._commit(uow)
        sale.id = results[0].id

        logger.info(
            "sale_recorded",
            sale_id=sale.id,
            customer_id=sale.customer_id,
            item_id=sale.inventory_id,
            quantity=sale.quantity,
            total_amount=str(sale.total_amount),
        )
        self._after_commit(
            {EntityType.SALE, EntityType.CUSTOMER, EntityType.INVENTORY},
            actor,
            "sale_recorded",
            "sales",
            self._sale_details(sale),
        )
        return await self._dispatch_sale_invoice(sale)

    async def reverse_sale(self, sale_id: int, actor: Actor | None = None) -> Sale:
        """
        Undo a sale: delete it, restore the stock and the customer's aggregates.

        Applies at most once; a second reversal raises ``NotFoundError``.
        """
        sale = Sale.model_validate(await self._load(EntityType.SALE, sale_id))

        uow = UnitOfWork(self._repository, "reverse_sale")
        uow.extend(self._sale_reverse_ops(sale))
        await self._commit(uow)

        logger.info(
            "sale_reversed",
            sale_id=sale_id,
            customer_id=sale.customer_id,
            item_id=sale.inventory_id,
            quantity=sale.quantity,
        )
        self._after_commit(
            {EntityType.SALE, EntityType.CUSTOMER, EntityType.INVENTORY},
            actor,
            "sale_reversed",
            "sales",
            self._sale_details(sale),
        )
        return sale

    async def edit_sale(
        self,
        sale_id: int,
        sale_input: SaleInput | dict[str, Any],
        actor: Actor | None = None,
    ) -> Sale:
        """
        Replace a sale: reverse the old one and record the new one together.

        The replacement gets a new id and its own invoice.
        """
        data = parse_input(SaleInput, sale_input)
        old = Sale.model_validate(await self._load(EntityType.SALE, sale_id))
        await self._load(EntityType.CUSTOMER, data.customer_id)
        item = InventoryItem.model_validate(
            await self._load(EntityType.INVENTORY, data.inventory_id)
        )

        new = self._build_sale(data, item)
        available = item.quantity
        if old.inventory_id == item.id:
            available += old.quantity
        if available < new.quantity:
            raise InsufficientStockError(item.id, new.quantity, available)

        reverse_ops = self._sale_reverse_ops(old)
        uow = UnitOfWork(self._repository, "edit_sale")
        uow.extend(reverse_ops)
        uow.extend(self._sale_record_ops(new))
        results = await self._commit(uow)
        new.id = results[len(reverse_ops)].id

        logger.info(
            "sale_edited",
            old_sale_id=sale_id,
            new_sale_id=new.id,
            total_amount=str(new.total_amount),
        )
        self._after_commit(
            {EntityType.SALE, EntityType.CUSTOMER, EntityType.INVENTORY},
            actor,
            "sale_edited",
            "sales",
            {"old_sale_id": sale_id, **self._sale_details(new)},
        )
        return await self._dispatch_sale_invoice(new)

    def _build_sale(self, data: SaleInput, item: InventoryItem) -> Sale:
        now = self._clock()
        return Sale(
            customer_id=data.customer_id,
            inventory_id=data.inventory_id,
            quantity=data.quantity,
            unit_price=data.unit_price if data.unit_price is not None else item.price,
            discount_type=data.discount_type,
            discount_value=data.discount_value,
            payment_method=data.payment_method,
            sale_date=data.sale_date or now,
            invoice_status=DocumentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    def _sale_record_ops(self, sale: Sale) -> list[Write]:
        return [
            Write.insert(EntityType.SALE, _row(sale)),
            self._stock_write(sale.inventory_id, -sale.quantity),
            Write.update(
                EntityType.CUSTOMER,
                sale.customer_id,
                deltas={"net_value": sale.total_amount, "purchase_count": 1},
            ),
        ]

    def _sale_reverse_ops(self, sale: Sale) -> list[Write]:
        return [
            Write.delete(EntityType.SALE, sale.id),  # type: ignore[arg-type]
            self._stock_write(sale.inventory_id, sale.quantity),
            Write.update(
                EntityType.CUSTOMER,
                sale.customer_id,
                deltas={"net_value": -sale.total_amount, "purchase_count": -1},
            ),
        ]

    @staticmethod
    def _stock_write(item_id: int, delta: int, fields: Row | None = None) -> Write:
        return Write.update(
            EntityType.INVENTORY,
            item_id,
            fields,
            deltas={"quantity": delta},
            floors={"quantity": 0},
            derive=derive_item_status,
        )

    @staticmethod
    def _sale_details(sale: Sale) -> dict[str, Any]:
        return {
            "sale_id": sale.id,
            "customer_id": sale.customer_id,
            "inventory_id": sale.inventory_id,
            "quantity": sale.quantity,
            "total_amount": str(sale.total_amount),
        }

    async def _dispatch_sale_invoice(self, sale: Sale) -> Sale:
        outcome = await self._dispatcher.dispatch(
            DocumentKind.SALES_INVOICE, EntityType.SALE, sale.id, sale  # type: ignore[arg-type]
        )
        sale.invoice_status = outcome.status
        if outcome.document_id is not None:
            sale.invoice_id = outcome.document_id
        return sale

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------

    async def record_service(
        self, service_input: ServiceInput | dict[str, Any], actor: Actor | None = None
    ) -> Service:
        """
        Open a repair ticket in ``pending``.

        Only ``service_count`` moves; the estimate does not count toward
        net value until the ticket is completed.
        """
        data = parse_input(ServiceInput, service_input)
        await self._load(EntityType.CUSTOMER, data.customer_id)

        now = self._clock()
        fields = data.model_dump(exclude={"service_date"})
        service = Service(
            **fields,
            service_date=data.service_date or now,
            status=ServiceStatus.PENDING,
            acknowledgement_status=DocumentStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        uow = UnitOfWork(self._repository, "record_service")
        uow.add(Write.insert(EntityType.SERVICE, _row(service)))
        uow.add(
            Write.update(
                EntityType.CUSTOMER, service.customer_id, deltas={"service_count": 1}
            )
        )
        results = await self._commit(uow)
        service.id = results[0].id

        logger.info(
            "service_recorded",
            service_id=service.id,
            customer_id=service.customer_id,
            estimate=str(service.cost),
        )
        self._after_commit(
            {EntityType.SERVICE, EntityType.CUSTOMER},
            actor,
            "service_recorded",
            "services",
            {"service_id": service.id, "customer_id": service.customer_id},
        )

        outcome = await self._dispatcher.dispatch(
            DocumentKind.SERVICE_ACKNOWLEDGEMENT, EntityType.SERVICE, service.id, service  # type: ignore[arg-type]
        )
        service.acknowledgement_status = outcome.status
        if outcome.document_id is not None:
            service.acknowledgement_invoice_id = outcome.document_id
        return service

    async def transition_service(
        self,
        service_id: int,
        to_status: ServiceStatus | str,
        payload: ServiceCompletion | dict[str, Any] | None = None,
        actor: Actor | None = None,
    ) -> Service:
        """
        Move a ticket to ``to_status``.

        Completion writes the final cost, adds it to the customer's net
        value in the same unit of work and dispatches the completion
        invoice.

        Raises:
            InvalidTransitionError: Not allowed from the current status, or
                the ticket moved concurrently.
            ValidationError: Missing or bad completion details.
        """
        service = Service.model_validate(await self._load(EntityType.SERVICE, service_id))
        plan = self._lifecycle.plan(service, to_status, payload, self._clock())

        uow = UnitOfWork(self._repository, "transition_service")
        uow.add(
            Write.update(
                EntityType.SERVICE,
                service_id,
                plan.patch,
                expect={"status": plan.from_status},
            )
        )
        if plan.revenue:
            uow.add(
                Write.update(
                    EntityType.CUSTOMER,
                    service.customer_id,
                    deltas={"net_value": plan.revenue},
                )
            )
        results = await self._commit(uow)
        updated = Service.model_validate(results[0].after)

        logger.info(
            "service_transitioned",
            service_id=service_id,
            from_status=plan.from_status.value,
            to_status=plan.to_status.value,
            revenue=str(plan.revenue),
        )
        touched = {EntityType.SERVICE}
        if plan.revenue:
            touched.add(EntityType.CUSTOMER)
        self._after_commit(
            touched,
            actor,
            "service_status_changed",
            "services",
            {
                "service_id": service_id,
                "from_status": plan.from_status.value,
                "to_status": plan.to_status.value,
            },
        )

        if plan.document is not None:
            outcome = await self._dispatcher.dispatch(
                plan.document, EntityType.SERVICE, service_id, updated
            )
            updated.completion_invoice_status = outcome.status
            if outcome.document_id is not None:
                updated.completion_invoice_id = outcome.document_id
        return updated

    async def reverse_service(self, service_id: int, actor: Actor | None = None) -> Service:
        """
        Delete a ticket and undo its aggregate contribution.

        A completed ticket also takes its final cost back out of net value.
        """
        service = Service.model_validate(await self._load(EntityType.SERVICE, service_id))

        deltas: dict[str, Any] = {"service_count": -1}
        if service.is_completed:
            deltas["net_value"] = -service.cost

        uow = UnitOfWork(self._repository, "reverse_service")
        uow.add(
            Write.delete(EntityType.SERVICE, service_id, expect={"status": service.status})
        )
        uow.add(Write.update(EntityType.CUSTOMER, service.customer_id, deltas=deltas))
        await self._commit(uow)

        logger.info(
            "service_reversed",
            service_id=service_id,
            customer_id=service.customer_id,
            status=service.status.value,
        )
        self._after_commit(
            {EntityType.SERVICE, EntityType.CUSTOMER},
            actor,
            "service_deleted",
            "services",
            {"service_id": service_id, "status": service.status.value},
        )
        return service

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    async def _source_aggregates(self, customer_id: int) -> tuple[int, int, Decimal]:
        sales = await self._repository.find_by(EntityType.SALE, customer_id=customer_id)
        services = await self._repository.find_by(
            EntityType.SERVICE, customer_id=customer_id
        )
        net_value = sum((to_money(s["total_amount"]) for s in sales), ZERO)
        net_value += sum(
            (
                to_money(s["cost"])
                for s in services
                if s["status"] == ServiceStatus.COMPLETED.value
            ),
            ZERO,
        )
        return len(sales), len(services), net_value

    async def recompute_customer_net_value(
        self, customer_id: int, actor: Actor | None = None
    ) -> Customer:
        """Rebuild a customer's aggregates from their sales and services."""
        before = Customer.model_validate(await self._load(EntityType.CUSTOMER, customer_id))
        purchase_count, service_count, net_value = await self._source_aggregates(customer_id)

        uow = UnitOfWork(self._repository, "recompute_customer_net_value")
        uow.add(
            Write.update(
                EntityType.CUSTOMER,
                customer_id,
                {
                    "net_value": net_value,
                    "purchase_count": purchase_count,
                    "service_count": service_count,
                    "needs_reconciliation": False,
                },
            )
        )
        results = await self._commit(uow)
        customer = Customer.model_validate(results[0].after)

        drifted = before.net_value != net_value or (
            before.purchase_count != purchase_count
            or before.service_count != service_count
        )
        log = logger.warning if drifted else logger.info
        log(
            "customer_aggregates_recomputed",
            customer_id=customer_id,
            net_value=str(net_value),
            previous_net_value=str(before.net_value),
            drifted=drifted,
        )
        self._after_commit(
            {EntityType.CUSTOMER},
            actor,
            "customer_recomputed",
            "customers",
            {"customer_id": customer_id, "drifted": drifted},
        )
        return customer

    async def check_customer_consistency(self, customer_id: int) -> list[str]:
        """Describe every aggregate that disagrees with the source rows."""
        customer = Customer.model_validate(
            await self._load(EntityType.CUSTOMER, customer_id)
        )
        purchase_count, service_count, net_value = await self._source_aggregates(customer_id)

        problems = []
        if customer.net_value != net_value:
            problems.append(
                f"net_value is {customer.net_value}, source rows give {net_value}"
            )
        if customer.purchase_count != purchase_count:
            problems.append(
                f"purchase_count is {customer.purchase_count}, "
                f"found {purchase_count} sales"
            )
        if customer.service_count != service_count:
            problems.append(
                f"service_count is {customer.service_count}, "
                f"found {service_count} services"
            )
        if customer.needs_reconciliation:
            problems.append("flagged for reconciliation")
        return problems

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _commit(self, uow: UnitOfWork) -> list[WriteResult]:
        try:
            return await uow.commit()
        except GuardViolationError as e:
            raise self._translate_guard(e) from e

    @staticmethod
    def _translate_guard(error: GuardViolationError) -> WatchcraftError:
        """Turn a write-time guard failure into the business error."""
        op: Write | None = error.op
        if op is None:
            return error
        if op.entity == EntityType.INVENTORY and error.field == "quantity":
            delta = op.deltas.get("quantity", 0)
            actual = error.actual or 0
            return InsufficientStockError(op.id, -delta, actual - delta)
        if op.entity == EntityType.SERVICE and error.field == "status":
            if op.kind == WriteKind.UPDATE:
                return InvalidTransitionError(
                    op.id, str(_value(error.actual)), str(_value(op.fields.get("status")))
                )
            return ConflictError(op.entity.label, "status", _value(error.actual))
        return error

    def _after_commit(
        self,
        entities: set[EntityType],
        actor: Actor | None,
        action: str,
        category: str,
        details: dict[str, Any],
    ) -> None:
        for entity in entities:
            self._cache.invalidate_all(entity)
        self._audit(actor, action, category, details)
        for entity in sorted(entities, key=lambda e: e.value):
            self._notify(entity)

    def _audit(
        self, actor: Actor | None, action: str, category: str, details: dict[str, Any]
    ) -> None:
        if self._audit_log is None:
            return
        actor = actor or SYSTEM_ACTOR
        try:
            self._audit_log.log(actor.username, actor.role, action, category, details)
        except Exception as e:
            logger.warning("audit_log_failed", action=action, error=str(e))

    def _notify(self, entity: EntityType) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(entity)
        except Exception as e:
            logger.warning("refresh_notify_failed", entity=entity.value, error=str(e))


def _value(value: Any) -> Any:
    return getattr(value, "value", value)

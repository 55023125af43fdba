"""
inventory_services.inventory_service -- the public operation surface.

Responsibility:
    ``InventoryService`` is the only component that opens write
    transactions.  Each public mutation is one unit of work:

        bind log context -> hold aggregate locks -> open session
        -> run services (flush-only) -> collect events -> commit
        -> release locks -> dispatch events -> record stats

    Reads run in their own short session, take no aggregate locks and see
    only committed state.

Architecture position:
    Services -- top of the service layer.  Constructs StockLedger,
    TransferCoordinator, ReservationManager, CatalogService, AuditRecorder
    and EventPublisher once per unit of work and shares the recorder and
    publisher between them.

Invariants enforced:
    - One transaction per public operation; any exception rolls all of it
      back (stock levels, batches, movements, audit records and events).
    - Process lock order: AggregateLocks (sorted) are acquired before the
      database transaction begins and released after it ends.
    - Webhook delivery happens after commit and outside every lock; its
      failures never undo or fail the operation.

Failure modes:
    - InventoryKernelError subclasses propagate unchanged.
    - ``sqlalchemy.exc.SQLAlchemyError`` inside a unit of work is re-raised
      as StorageError (chained).

Usage:
    service = build_inventory_service()
    result = service.receive_stock(tenant_id, product_id, location_id,
                                   Decimal("10"), Decimal("2.50"), actor_id)
    result.value.level.quantity_on_hand
    result.events        # EventRecords committed with the change
    result.deliveries    # DeliveryReports from post-commit dispatch
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_config.schema import InventoryConfig
from inventory_engines.costing import CostingEngine
from inventory_kernel.db.locking import AggregateKey, AggregateLocks
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    AuditEntry,
    AuditSearchFilter,
    BatchInfo,
    CatalogFilter,
    ChannelInfo,
    EventFilter,
    EventRecord,
    LocationInfo,
    MovementFilter,
    MovementRecord,
    ProductInfo,
    ReservationFilter,
    ReservationInfo,
    StockLevelFilter,
    StockLevelSnapshot,
    SubscriptionInfo,
    TransferFilter,
    TransferInfo,
)
from inventory_kernel.domain.types import (
    ChannelType,
    CostingStrategy,
    LocationType,
    ReservationStatus,
    SubscriptionStatus,
)
from inventory_kernel.exceptions import InventoryKernelError, StorageError
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models import Reservation, StockTransfer
from inventory_kernel.selectors.catalog_selector import CatalogSelector
from inventory_kernel.selectors.stock_selector import StockSelector
from inventory_kernel.services.audit_recorder import AuditRecorder, AuditTrace
from inventory_services.catalog_service import CatalogService
from inventory_services.event_publisher import DeliveryReport, EventDispatcher, EventPublisher
from inventory_services.reservation_manager import ReservationManager, ReservationOutcome
from inventory_services.stats import LedgerStats, StatsSnapshot
from inventory_services.stock_ledger import StockChange, StockLedger
from inventory_services.transfer_coordinator import TransferCoordinator, TransferOutcome
from inventory_services.webhook import WebhookTransport

logger = get_logger("services.inventory")

T = TypeVar("T")


@dataclass(frozen=True)
class LedgerResult(Generic[T]):
    """Committed outcome of one mutation plus what happened after commit."""

    value: T
    events: tuple[EventRecord, ...] = ()
    deliveries: tuple[DeliveryReport, ...] = ()

    @property
    def failed_deliveries(self) -> tuple[DeliveryReport, ...]:
        return tuple(d for d in self.deliveries if not d.success)


class _UnitServices:
    """Services for one unit of work, all bound to the same session."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        costing_engine: CostingEngine,
        search_limit: int,
    ):
        self.session = session
        self.auditor = AuditRecorder(session, clock, search_limit=search_limit)
        self.publisher = EventPublisher(session, clock)
        self.ledger = StockLedger(session, clock, costing_engine, self.auditor, self.publisher)
        self.transfers = TransferCoordinator(session, clock, self.ledger)
        self.reservations = ReservationManager(session, clock, self.ledger)
        self.catalog = CatalogService(session, clock, self.auditor, self.publisher)


class InventoryService:
    """
    Transactional facade over the stock ledger.

    Contract:
        Every mutating method returns a LedgerResult once its transaction
        has committed, or raises having changed nothing.  Every method takes
        ``tenant_id``; mutating methods also take ``performed_by``.

    Non-goals:
        - Cross-process mutual exclusion beyond database row locks.
        - Idempotency keys.  A retried call books a second change.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        transport: WebhookTransport | None = None,
        config: InventoryConfig | None = None,
        locks: AggregateLocks | None = None,
        costing_engine: CostingEngine | None = None,
        stats: LedgerStats | None = None,
    ):
        self._config = config or InventoryConfig()
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._locks = locks or AggregateLocks()
        self._costing = costing_engine or CostingEngine(self._config.costing.average_cost_places)
        self._stats = stats or LedgerStats()
        self._max_results = self._config.query.max_results
        self._dispatcher = EventDispatcher(
            session_factory,
            transport,
            clock=self._clock,
            event_header=self._config.events.event_header,
            signature_header=self._config.events.signature_header,
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def stats(self) -> LedgerStats:
        return self._stats

    def snapshot(self) -> StatsSnapshot:
        return self._stats.snapshot()

    # =========================================================================
    # Unit of work
    # =========================================================================

    def _unit_of_work(
        self,
        operation: str,
        tenant_id: UUID,
        actor_id: UUID | None,
        keys: Iterable[AggregateKey],
        work: Callable[[_UnitServices], T],
    ) -> LedgerResult[T]:
        ordered = AggregateLocks.ordered(keys)
        with LogContext.bind(
            correlation_id=uuid4(),
            tenant_id=tenant_id,
            actor_id=actor_id,
            operation=operation,
            aggregate=",".join(str(k) for k in ordered) or None,
        ):
            with self._locks.hold(ordered):
                value, events = self._run(operation, work)

            deliveries = self._dispatch(events)
            self._stats.record_success(operation, events_derived=len(events))
            self._stats.record_deliveries(deliveries)
            return LedgerResult(value=value, events=tuple(events), deliveries=tuple(deliveries))

    def _run(
        self, operation: str, work: Callable[[_UnitServices], T],
    ) -> tuple[T, list[EventRecord]]:
        session = self._session_factory()
        try:
            services = _UnitServices(session, self._clock, self._costing, self._max_results)
            value = work(services)
            events = [row.to_dto() for row in services.publisher.recorded]
            session.commit()
            return value, events
        except InventoryKernelError as exc:
            session.rollback()
            self._stats.record_failure(operation, exc.code)
            logger.info("operation_rejected", extra={"error_code": exc.code, "error": str(exc)})
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            self._stats.record_failure(operation, StorageError.code)
            logger.exception("operation_storage_failure")
            raise StorageError(operation, str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _dispatch(self, events: list[EventRecord]) -> list[DeliveryReport]:
        # The change is committed; a dispatch failure leaves events for dispatch_pending
        try:
            return self._dispatcher.dispatch(events)
        except Exception:
            logger.exception("event_dispatch_failed", extra={"event_count": len(events)})
            return []

    def _read(self, operation: str, query: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            return query(session)
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc)) from exc
        finally:
            session.rollback()
            session.close()

    def _transfer_keys(self, tenant_id: UUID, transfer_id: UUID) -> list[AggregateKey]:
        """Aggregates a transfer touches, read before its locks are taken."""

        def query(session: Session) -> list[AggregateKey]:
            row = session.get(StockTransfer, transfer_id)
            if row is None or row.tenant_id != tenant_id:
                return []
            return [
                AggregateKey(tenant_id, row.product_id, row.from_location_id),
                AggregateKey(tenant_id, row.product_id, row.to_location_id),
            ]

        return self._read("transfer_keys", query)

    def _reservation_keys(self, tenant_id: UUID, reservation_id: UUID) -> list[AggregateKey]:
        def query(session: Session) -> list[AggregateKey]:
            row = session.get(Reservation, reservation_id)
            if row is None or row.tenant_id != tenant_id:
                return []
            return [AggregateKey(tenant_id, row.product_id, row.location_id)]

        return self._read("reservation_keys", query)

    # =========================================================================
    # Stock operations
    # =========================================================================

    def receive_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        cost_per_unit: Decimal,
        performed_by: UUID,
        batch_number: str | None = None,
        expiry_date: date | None = None,
        received_at: datetime | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult[StockChange]:
        return self._unit_of_work(
            "receive_stock", tenant_id, performed_by,
            [AggregateKey(tenant_id, product_id, location_id)],
            lambda s: s.ledger.receive(
                tenant_id, product_id, location_id, quantity, cost_per_unit, performed_by,
                batch_number=batch_number,
                expiry_date=expiry_date,
                received_at=received_at,
                reference_type=reference_type,
                reference_id=reference_id,
            ),
        )

    def sell_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        channel_id: UUID | None,
        quantity: Decimal,
        performed_by: UUID,
        batch_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult[StockChange]:
        return self._unit_of_work(
            "sell_stock", tenant_id, performed_by,
            [AggregateKey(tenant_id, product_id, location_id)],
            lambda s: s.ledger.sell(
                tenant_id, product_id, location_id, channel_id, quantity, performed_by,
                batch_id=batch_id,
                reference_type=reference_type,
                reference_id=reference_id,
            ),
        )

    def adjust_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        delta: Decimal,
        reason: str,
        performed_by: UUID,
        cost_per_unit: Decimal | None = None,
        batch_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult[StockChange]:
        return self._unit_of_work(
            "adjust_stock", tenant_id, performed_by,
            [AggregateKey(tenant_id, product_id, location_id)],
            lambda s: s.ledger.adjust(
                tenant_id, product_id, location_id, delta, reason, performed_by,
                cost_per_unit=cost_per_unit,
                batch_id=batch_id,
                reference_type=reference_type,
                reference_id=reference_id,
            ),
        )

    def return_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        cost_per_unit: Decimal | None = None,
        channel_id: UUID | None = None,
        reason: str | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult[StockChange]:
        return self._unit_of_work(
            "return_stock", tenant_id, performed_by,
            [AggregateKey(tenant_id, product_id, location_id)],
            lambda s: s.ledger.return_stock(
                tenant_id, product_id, location_id, quantity, performed_by,
                cost_per_unit=cost_per_unit,
                channel_id=channel_id,
                reason=reason,
                reference_type=reference_type,
                reference_id=reference_id,
            ),
        )

    def write_off_stock(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        quantity: Decimal,
        reason: str,
        performed_by: UUID,
        batch_id: UUID | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
    ) -> LedgerResult[StockChange]:
        return self._unit_of_work(
            "write_off_stock", tenant_id, performed_by,
            [AggregateKey(tenant_id, product_id, location_id)],
            lambda s: s.ledger.write_off(
                tenant_id, product_id, location_id, quantity, reason, performed_by,
                batch_id=batch_id,
                reference_type=reference_type,
                reference_id=reference_id,
            ),
        )

    def get_stock_level(self, tenant_id: UUID, product_id: UUID, location_id: UUID) -> StockLevelSnapshot:
        return self._read(
            "get_stock_level",
            lambda session: StockSelector(session, self._max_results).get_stock_level(
                tenant_id, product_id, location_id,
            ),
        )

    def list_stock_levels(
        self, tenant_id: UUID, criteria: StockLevelFilter | None = None,
    ) -> list[StockLevelSnapshot]:
        return self._read(
            "list_stock_levels",
            lambda session: StockSelector(session, self._max_results).list_stock_levels(tenant_id, criteria),
        )

    def get_movements(self, tenant_id: UUID, criteria: MovementFilter | None = None) -> list[MovementRecord]:
        return self._read(
            "get_movements",
            lambda session: StockSelector(session, self._max_results).get_movements(tenant_id, criteria),
        )

    def get_batches(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID | None = None,
        include_depleted: bool = False,
    ) -> list[BatchInfo]:
        return self._read(
            "get_batches",
            lambda session: StockSelector(session, self._max_results).get_batches(
                tenant_id, product_id, location_id, include_depleted,
            ),
        )

    # =========================================================================
    # Transfers
    # =========================================================================

    def create_transfer(
        self,
        tenant_id: UUID,
        product_id: UUID,
        from_location_id: UUID,
        to_location_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        batch_id: UUID | None = None,
        notes: str | None = None,
    ) -> LedgerResult[TransferOutcome]:
        return self._unit_of_work(
            "create_transfer", tenant_id, performed_by,
            [
                AggregateKey(tenant_id, product_id, from_location_id),
                AggregateKey(tenant_id, product_id, to_location_id),
            ],
            lambda s: s.transfers.initiate(
                tenant_id, product_id, from_location_id, to_location_id, quantity, performed_by,
                batch_id=batch_id,
                notes=notes,
            ),
        )

    def complete_transfer(
        self, tenant_id: UUID, transfer_id: UUID, performed_by: UUID,
    ) -> LedgerResult[TransferOutcome]:
        return self._unit_of_work(
            "complete_transfer", tenant_id, performed_by,
            self._transfer_keys(tenant_id, transfer_id),
            lambda s: s.transfers.complete(tenant_id, transfer_id, performed_by),
        )

    def cancel_transfer(
        self,
        tenant_id: UUID,
        transfer_id: UUID,
        performed_by: UUID,
        reason: str | None = None,
    ) -> LedgerResult[TransferOutcome]:
        return self._unit_of_work(
            "cancel_transfer", tenant_id, performed_by,
            self._transfer_keys(tenant_id, transfer_id),
            lambda s: s.transfers.cancel(tenant_id, transfer_id, performed_by, reason),
        )

    def get_transfer(self, tenant_id: UUID, transfer_id: UUID) -> TransferInfo:
        return self._read(
            "get_transfer",
            lambda session: StockSelector(session, self._max_results).get_transfer(tenant_id, transfer_id),
        )

    def get_transfers(self, tenant_id: UUID, criteria: TransferFilter | None = None) -> list[TransferInfo]:
        return self._read(
            "get_transfers",
            lambda session: StockSelector(session, self._max_results).get_transfers(tenant_id, criteria),
        )

    # =========================================================================
    # Reservations
    # =========================================================================

    def create_reservation(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID,
        channel_id: UUID,
        quantity: Decimal,
        performed_by: UUID,
        expires_at: datetime | None = None,
        reference_type: str | None = None,
        reference_id: str | None = None,
        batch_id: UUID | None = None,
    ) -> LedgerResult[ReservationOutcome]:
        return self._unit_of_work(
            "create_reservation", tenant_id, performed_by,
            [AggregateKey(tenant_id, product_id, location_id)],
            lambda s: s.reservations.create(
                tenant_id, product_id, location_id, channel_id, quantity, performed_by,
                expires_at=expires_at,
                reference_type=reference_type,
                reference_id=reference_id,
                batch_id=batch_id,
            ),
        )

    def fulfill_reservation(
        self, tenant_id: UUID, reservation_id: UUID, performed_by: UUID,
    ) -> LedgerResult[ReservationOutcome]:
        return self._unit_of_work(
            "fulfill_reservation", tenant_id, performed_by,
            self._reservation_keys(tenant_id, reservation_id),
            lambda s: s.reservations.fulfill(tenant_id, reservation_id, performed_by),
        )

    def cancel_reservation(
        self,
        tenant_id: UUID,
        reservation_id: UUID,
        performed_by: UUID,
        reason: str | None = None,
    ) -> LedgerResult[ReservationOutcome]:
        return self._unit_of_work(
            "cancel_reservation", tenant_id, performed_by,
            self._reservation_keys(tenant_id, reservation_id),
            lambda s: s.reservations.cancel(tenant_id, reservation_id, performed_by, reason),
        )

    def expire_reservation(
        self, tenant_id: UUID, reservation_id: UUID, performed_by: UUID,
    ) -> LedgerResult[ReservationOutcome]:
        return self._unit_of_work(
            "expire_reservation", tenant_id, performed_by,
            self._reservation_keys(tenant_id, reservation_id),
            lambda s: s.reservations.expire(tenant_id, reservation_id, performed_by),
        )

    def expire_reservations(
        self, tenant_id: UUID, performed_by: UUID,
    ) -> LedgerResult[list[ReservationOutcome]]:
        """
        Expire every reservation of the tenant whose deadline has passed.

        The due set is read first so its aggregates can be locked; a
        reservation resolved in between is skipped, one that became due in
        between waits for the next sweep.
        """
        now = self._clock.now()

        def query(session: Session) -> dict[UUID, AggregateKey]:
            manager = ReservationManager(session, self._clock)
            return {
                r.id: AggregateKey(tenant_id, r.product_id, r.location_id)
                for r in manager.due_reservations(tenant_id, now)
            }

        due = self._read("expire_reservations", query)
        return self._unit_of_work(
            "expire_reservations", tenant_id, performed_by,
            due.values(),
            lambda s: s.reservations.expire_due(tenant_id, performed_by, now=now, only=set(due)),
        )

    def tenants_with_due_reservations(self, now: datetime | None = None) -> list[UUID]:
        now = now or self._clock.now()
        return self._read(
            "tenants_with_due_reservations",
            lambda session: list(session.execute(
                select(Reservation.tenant_id)
                .where(
                    Reservation.status == ReservationStatus.ACTIVE.value,
                    Reservation.expires_at.is_not(None),
                    Reservation.expires_at <= now,
                )
                .distinct()
            ).scalars().all()),
        )

    def get_reservation(self, tenant_id: UUID, reservation_id: UUID) -> ReservationInfo:
        return self._read(
            "get_reservation",
            lambda session: StockSelector(session, self._max_results).get_reservation(
                tenant_id, reservation_id,
            ),
        )

    def get_reservations(
        self, tenant_id: UUID, criteria: ReservationFilter | None = None,
    ) -> list[ReservationInfo]:
        return self._read(
            "get_reservations",
            lambda session: StockSelector(session, self._max_results).get_reservations(tenant_id, criteria),
        )

    # =========================================================================
    # Audit and events
    # =========================================================================

    def search_audit_log(
        self, tenant_id: UUID, criteria: AuditSearchFilter | None = None,
    ) -> list[AuditEntry]:
        return self._read(
            "search_audit_log",
            lambda session: AuditRecorder(session, self._clock, self._max_results).search(
                tenant_id, criteria,
            ),
        )

    def get_entity_history(self, tenant_id: UUID, entity_type: str, entity_id: UUID) -> AuditTrace:
        return self._read(
            "get_entity_history",
            lambda session: AuditRecorder(session, self._clock).get_entity_history(
                tenant_id, entity_type, entity_id,
            ),
        )

    def validate_audit_chain(self, tenant_id: UUID) -> bool:
        """
        Raises:
            AuditChainBrokenError: the tenant's chain does not verify.
        """
        return self._read(
            "validate_audit_chain",
            lambda session: AuditRecorder(session, self._clock).validate_chain(tenant_id),
        )

    def get_events(self, tenant_id: UUID, criteria: EventFilter | None = None) -> list[EventRecord]:
        return self._read(
            "get_events",
            lambda session: StockSelector(session, self._max_results).get_events(tenant_id, criteria),
        )

    def dispatch_pending_events(self, tenant_id: UUID) -> list[DeliveryReport]:
        """Deliver committed events that were never dispatched."""
        with LogContext.bind(tenant_id=tenant_id, operation="dispatch_pending_events"):
            try:
                reports = self._dispatcher.dispatch_pending(tenant_id, limit=self._max_results)
            except SQLAlchemyError as exc:
                raise StorageError("dispatch_pending_events", str(exc)) from exc
        self._stats.record_deliveries(reports)
        return reports

    # =========================================================================
    # Catalog
    # =========================================================================

    def create_product(
        self,
        tenant_id: UUID,
        sku: str,
        name: str,
        performed_by: UUID,
        inventory_strategy: CostingStrategy = CostingStrategy.FIFO,
        **fields: Any,
    ) -> LedgerResult[ProductInfo]:
        return self._unit_of_work(
            "create_product", tenant_id, performed_by, (),
            lambda s: s.catalog.create_product(
                tenant_id, sku, name, performed_by, inventory_strategy=inventory_strategy, **fields,
            ),
        )

    def update_product(
        self, tenant_id: UUID, product_id: UUID, performed_by: UUID, **changes: Any,
    ) -> LedgerResult[ProductInfo]:
        return self._unit_of_work(
            "update_product", tenant_id, performed_by, (),
            lambda s: s.catalog.update_product(tenant_id, product_id, performed_by, **changes),
        )

    def get_product(self, tenant_id: UUID, product_id: UUID) -> ProductInfo:
        return self._read(
            "get_product",
            lambda session: CatalogSelector(session, self._max_results).get_product(tenant_id, product_id),
        )

    def get_product_by_sku(self, tenant_id: UUID, sku: str) -> ProductInfo:
        return self._read(
            "get_product_by_sku",
            lambda session: CatalogSelector(session, self._max_results).get_product_by_sku(tenant_id, sku),
        )

    def list_products(self, tenant_id: UUID, criteria: CatalogFilter | None = None) -> list[ProductInfo]:
        return self._read(
            "list_products",
            lambda session: CatalogSelector(session, self._max_results).list_products(tenant_id, criteria),
        )

    def create_location(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        performed_by: UUID,
        location_type: LocationType = LocationType.WAREHOUSE,
        address: dict[str, Any] | None = None,
        parent_location_id: UUID | None = None,
    ) -> LedgerResult[LocationInfo]:
        return self._unit_of_work(
            "create_location", tenant_id, performed_by, (),
            lambda s: s.catalog.create_location(
                tenant_id, code, name, performed_by,
                location_type=location_type,
                address=address,
                parent_location_id=parent_location_id,
            ),
        )

    def update_location(
        self, tenant_id: UUID, location_id: UUID, performed_by: UUID, **changes: Any,
    ) -> LedgerResult[LocationInfo]:
        return self._unit_of_work(
            "update_location", tenant_id, performed_by, (),
            lambda s: s.catalog.update_location(tenant_id, location_id, performed_by, **changes),
        )

    def get_location(self, tenant_id: UUID, location_id: UUID) -> LocationInfo:
        return self._read(
            "get_location",
            lambda session: CatalogSelector(session, self._max_results).get_location(tenant_id, location_id),
        )

    def get_location_by_code(self, tenant_id: UUID, code: str) -> LocationInfo:
        return self._read(
            "get_location_by_code",
            lambda session: CatalogSelector(session, self._max_results).get_location_by_code(tenant_id, code),
        )

    def list_locations(self, tenant_id: UUID, active_only: bool = False) -> list[LocationInfo]:
        return self._read(
            "list_locations",
            lambda session: CatalogSelector(session, self._max_results).list_locations(tenant_id, active_only),
        )

    def create_channel(
        self,
        tenant_id: UUID,
        code: str,
        name: str,
        channel_type: ChannelType,
        performed_by: UUID,
        webhook_url: str | None = None,
        webhook_secret: str | None = None,
    ) -> LedgerResult[ChannelInfo]:
        return self._unit_of_work(
            "create_channel", tenant_id, performed_by, (),
            lambda s: s.catalog.create_channel(
                tenant_id, code, name, channel_type, performed_by,
                webhook_url=webhook_url,
                webhook_secret=webhook_secret,
            ),
        )

    def update_channel(
        self, tenant_id: UUID, channel_id: UUID, performed_by: UUID, **changes: Any,
    ) -> LedgerResult[ChannelInfo]:
        return self._unit_of_work(
            "update_channel", tenant_id, performed_by, (),
            lambda s: s.catalog.update_channel(tenant_id, channel_id, performed_by, **changes),
        )

    def get_channel(self, tenant_id: UUID, channel_id: UUID) -> ChannelInfo:
        return self._read(
            "get_channel",
            lambda session: CatalogSelector(session, self._max_results).get_channel(tenant_id, channel_id),
        )

    def get_channel_by_code(self, tenant_id: UUID, code: str) -> ChannelInfo:
        return self._read(
            "get_channel_by_code",
            lambda session: CatalogSelector(session, self._max_results).get_channel_by_code(tenant_id, code),
        )

    def list_channels(self, tenant_id: UUID, active_only: bool = False) -> list[ChannelInfo]:
        return self._read(
            "list_channels",
            lambda session: CatalogSelector(session, self._max_results).list_channels(tenant_id, active_only),
        )

    def create_subscription(
        self,
        tenant_id: UUID,
        channel_id: UUID,
        event_types: list[str] | tuple[str, ...],
        performed_by: UUID,
        product_id: UUID | None = None,
        location_id: UUID | None = None,
    ) -> LedgerResult[SubscriptionInfo]:
        return self._unit_of_work(
            "create_subscription", tenant_id, performed_by, (),
            lambda s: s.catalog.create_subscription(
                tenant_id, channel_id, event_types, performed_by,
                product_id=product_id,
                location_id=location_id,
            ),
        )

    def set_subscription_status(
        self,
        tenant_id: UUID,
        subscription_id: UUID,
        status: SubscriptionStatus,
        performed_by: UUID,
    ) -> LedgerResult[SubscriptionInfo]:
        return self._unit_of_work(
            "set_subscription_status", tenant_id, performed_by, (),
            lambda s: s.catalog.set_subscription_status(tenant_id, subscription_id, status, performed_by),
        )

    def list_subscriptions(self, tenant_id: UUID, channel_id: UUID | None = None) -> list[SubscriptionInfo]:
        return self._read(
            "list_subscriptions",
            lambda session: CatalogSelector(session, self._max_results).list_subscriptions(
                tenant_id, channel_id,
            ),
        )

"""
StockSelector -- read side of the stock ledger.

Stock levels, movement history, cost layers, transfers, reservations and
derived events, all scoped to one tenant.  Reads see committed state only
and never take aggregate locks, so repeating a read without an intervening
write returns identical results.
"""

from uuid import UUID

from sqlalchemy import or_, select

from inventory_kernel.domain.dtos import (
    BatchInfo,
    EventFilter,
    EventRecord,
    MovementFilter,
    MovementRecord,
    ReservationFilter,
    ReservationInfo,
    StockLevelFilter,
    StockLevelSnapshot,
    TransferFilter,
    TransferInfo,
)
from inventory_kernel.exceptions import (
    LocationNotFoundError,
    ProductNotFoundError,
    ReservationNotFoundError,
    TransferNotFoundError,
)
from inventory_kernel.models import (
    InventoryEvent,
    Location,
    Product,
    Reservation,
    StockBatch,
    StockLevel,
    StockMovement,
    StockTransfer,
)
from inventory_kernel.selectors.base import BaseSelector, load_owned


class StockSelector(BaseSelector):

    def get_stock_level(self, tenant_id: UUID, product_id: UUID, location_id: UUID) -> StockLevelSnapshot:
        """
        Current quantities for one aggregate.

        An aggregate that has never moved reports zeros; the product and
        location must still exist for the tenant.
        """
        load_owned(self.session, Product, tenant_id, product_id, ProductNotFoundError)
        load_owned(self.session, Location, tenant_id, location_id, LocationNotFoundError)
        level = self.session.execute(
            select(StockLevel).where(
                StockLevel.tenant_id == tenant_id,
                StockLevel.product_id == product_id,
                StockLevel.location_id == location_id,
            )
        ).scalar_one_or_none()
        if level is None:
            return StockLevelSnapshot.empty(tenant_id, product_id, location_id)
        return level.to_dto()

    def list_stock_levels(
        self, tenant_id: UUID, criteria: StockLevelFilter | None = None,
    ) -> list[StockLevelSnapshot]:
        criteria = criteria or StockLevelFilter()
        stmt = select(StockLevel).where(StockLevel.tenant_id == tenant_id)
        if criteria.product_id is not None:
            stmt = stmt.where(StockLevel.product_id == criteria.product_id)
        if criteria.location_id is not None:
            stmt = stmt.where(StockLevel.location_id == criteria.location_id)
        if not criteria.include_zero:
            stmt = stmt.where(
                or_(
                    StockLevel.quantity_on_hand != 0,
                    StockLevel.quantity_reserved != 0,
                    StockLevel.quantity_in_transit != 0,
                )
            )
        rows = self.session.execute(
            stmt.order_by(StockLevel.product_id, StockLevel.location_id).limit(self.max_results)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_movements(
        self, tenant_id: UUID, criteria: MovementFilter | None = None,
    ) -> list[MovementRecord]:
        """Movements newest first (created_at, then seq) unless ``ascending``."""
        criteria = criteria or MovementFilter()
        stmt = select(StockMovement).where(StockMovement.tenant_id == tenant_id)
        if criteria.product_id is not None:
            stmt = stmt.where(StockMovement.product_id == criteria.product_id)
        if criteria.location_id is not None:
            stmt = stmt.where(StockMovement.location_id == criteria.location_id)
        if criteria.movement_type is not None:
            stmt = stmt.where(StockMovement.movement_type == criteria.movement_type.value)
        if criteria.reference_type is not None:
            stmt = stmt.where(StockMovement.reference_type == criteria.reference_type)
        if criteria.reference_id is not None:
            stmt = stmt.where(StockMovement.reference_id == criteria.reference_id)
        if criteria.from_date is not None:
            stmt = stmt.where(StockMovement.created_at >= criteria.from_date)
        if criteria.to_date is not None:
            stmt = stmt.where(StockMovement.created_at <= criteria.to_date)

        if criteria.ascending:
            stmt = stmt.order_by(StockMovement.created_at, StockMovement.seq)
        else:
            stmt = stmt.order_by(StockMovement.created_at.desc(), StockMovement.seq.desc())

        rows = self.session.execute(stmt.limit(self._limit(criteria.limit))).scalars().all()
        return [row.to_dto() for row in rows]

    def get_batches(
        self,
        tenant_id: UUID,
        product_id: UUID,
        location_id: UUID | None = None,
        include_depleted: bool = False,
    ) -> list[BatchInfo]:
        """Cost layers oldest first (received_at, then batch id)."""
        stmt = select(StockBatch).where(
            StockBatch.tenant_id == tenant_id,
            StockBatch.product_id == product_id,
        )
        if location_id is not None:
            stmt = stmt.where(StockBatch.location_id == location_id)
        if not include_depleted:
            stmt = stmt.where(StockBatch.remaining_quantity > 0)
        rows = self.session.execute(
            stmt.order_by(StockBatch.received_at, StockBatch.id).limit(self.max_results)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # Transfers and reservations

    def get_transfer(self, tenant_id: UUID, transfer_id: UUID) -> TransferInfo:
        return load_owned(
            self.session, StockTransfer, tenant_id, transfer_id, TransferNotFoundError,
        ).to_dto()

    def get_transfers(
        self, tenant_id: UUID, criteria: TransferFilter | None = None,
    ) -> list[TransferInfo]:
        criteria = criteria or TransferFilter()
        stmt = select(StockTransfer).where(StockTransfer.tenant_id == tenant_id)
        if criteria.product_id is not None:
            stmt = stmt.where(StockTransfer.product_id == criteria.product_id)
        if criteria.location_id is not None:
            stmt = stmt.where(
                or_(
                    StockTransfer.from_location_id == criteria.location_id,
                    StockTransfer.to_location_id == criteria.location_id,
                )
            )
        if criteria.status is not None:
            stmt = stmt.where(StockTransfer.status == criteria.status.value)
        rows = self.session.execute(
            stmt.order_by(StockTransfer.initiated_at.desc(), StockTransfer.id).limit(self.max_results)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def get_reservation(self, tenant_id: UUID, reservation_id: UUID) -> ReservationInfo:
        return load_owned(
            self.session, Reservation, tenant_id, reservation_id, ReservationNotFoundError,
        ).to_dto()

    def get_reservations(
        self, tenant_id: UUID, criteria: ReservationFilter | None = None,
    ) -> list[ReservationInfo]:
        criteria = criteria or ReservationFilter()
        stmt = select(Reservation).where(Reservation.tenant_id == tenant_id)
        if criteria.product_id is not None:
            stmt = stmt.where(Reservation.product_id == criteria.product_id)
        if criteria.location_id is not None:
            stmt = stmt.where(Reservation.location_id == criteria.location_id)
        if criteria.channel_id is not None:
            stmt = stmt.where(Reservation.channel_id == criteria.channel_id)
        if criteria.status is not None:
            stmt = stmt.where(Reservation.status == criteria.status.value)
        rows = self.session.execute(
            stmt.order_by(Reservation.created_at.desc(), Reservation.id).limit(self.max_results)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    # Events

    def get_events(self, tenant_id: UUID, criteria: EventFilter | None = None) -> list[EventRecord]:
        criteria = criteria or EventFilter()
        stmt = select(InventoryEvent).where(InventoryEvent.tenant_id == tenant_id)
        if criteria.event_type is not None:
            stmt = stmt.where(InventoryEvent.event_type == criteria.event_type.value)
        if criteria.product_id is not None:
            stmt = stmt.where(InventoryEvent.product_id == criteria.product_id)
        if criteria.location_id is not None:
            stmt = stmt.where(InventoryEvent.location_id == criteria.location_id)
        if criteria.unprocessed_only:
            stmt = stmt.where(InventoryEvent.processed_at.is_(None))
        rows = self.session.execute(
            stmt.order_by(InventoryEvent.created_at, InventoryEvent.id).limit(self._limit(criteria.limit))
        ).scalars().all()
        return [row.to_dto() for row in rows]

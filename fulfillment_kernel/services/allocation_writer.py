"""
AllocationWriter -- the only code path that moves lot quantities for an order.

Responsibility:
    Reserve stock for an order line, and later release, consume or restock
    it.  Each operation is one conditional UPDATE on the lot, one status
    write on the allocation (or a new allocation row) and one activity log
    entry, all inside the caller's transaction.

Architecture position:
    Kernel > Services.  Called by AllocationService (reserve) and by the
    FulfillmentOrchestrator (consume, release, restock).

Invariants enforced:
    - A reservation never takes a lot below zero available: the UPDATE's
      WHERE clause carries the check, and a rowcount of 0 raises
      LotQuantityConflictError.
    - The live allocations of an order item never exceed its ordered
      quantity: re-checked after the reservation, once this transaction
      holds the lot's write lock.
    - Allocation rows are inserted once; later steps change only status.

Failure modes:
    - LotQuantityConflictError: the lot no longer has enough available (or
      reserved) stock.  Retryable.
    - AllocationRaceConflictError: a concurrent allocation already covered
      the item.  Retryable.
    The caller must roll back on either; partial writes are never committed.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.domain.dtos import LotCandidate, OrderLine
from fulfillment_kernel.exceptions import (
    AllocationRaceConflictError,
    InvalidQuantityError,
    LotNotFoundError,
    LotQuantityConflictError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.activity_log import ActivityAction
from fulfillment_kernel.models.allocation import AllocationStatus, InventoryAllocation
from fulfillment_kernel.models.inventory_lot import LotStatus
from fulfillment_kernel.repositories.allocation_repository import SqlAllocationRepository
from fulfillment_kernel.repositories.lot_repository import SqlInventoryLotRepository
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.allocation_writer")


class AllocationWriter(BaseService):
    """Writes allocations together with their lot updates and log entries."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lot_repository: SqlInventoryLotRepository | None = None,
        allocation_repository: SqlAllocationRepository | None = None,
        activity_log: ActivityLogWriter | None = None,
    ):
        super().__init__(session)
        self._lots = lot_repository or SqlInventoryLotRepository(session)
        self._allocations = allocation_repository or SqlAllocationRepository(session)
        self._activity = activity_log or ActivityLogWriter(session, clock)

    def commit_allocation(
        self,
        order_line: OrderLine,
        lot: LotCandidate,
        quantity: Decimal,
        actor_id: UUID,
        *,
        strategy: str | None = None,
        pending_quantity: Decimal = ZERO,
    ) -> InventoryAllocation:
        """
        Reserve ``quantity`` from ``lot`` against ``order_line``.

        ``pending_quantity`` is what the same request still reserves from
        other lots after this one; it counts towards coverage when the
        allocation's status is decided, so every pick of a request that
        covers the item is ALLOCATED.

        Postconditions (all flushed, none committed):
            - lot.reserved_quantity increased by ``quantity``;
            - one InventoryAllocation, PARTIAL or ALLOCATED by item coverage;
            - one RESERVE activity entry referencing the allocation.
        """
        quantity = to_quantity(quantity)
        if quantity <= ZERO:
            raise InvalidQuantityError(str(quantity))

        with LogContext.bind(lot_id=lot.lot_id):
            ok, new_available = self._lots.decrement_lot_quantity(lot.lot_id, quantity)
            if not ok:
                logger.warning(
                    "lot_reservation_conflict",
                    extra={"requested": str(quantity), "available": str(new_available)},
                )
                raise LotQuantityConflictError(str(lot.lot_id), str(quantity))

            allocated = self._allocations.allocated_quantity_for_item(order_line.order_item_id)
            remaining = order_line.quantity_ordered - allocated
            if quantity > remaining:
                logger.warning(
                    "allocation_race_conflict",
                    extra={
                        "order_item_id": str(order_line.order_item_id),
                        "requested": str(quantity),
                        "remaining": str(remaining),
                    },
                )
                raise AllocationRaceConflictError(
                    str(order_line.order_item_id), str(quantity), str(remaining)
                )

            if allocated + quantity + pending_quantity >= order_line.quantity_ordered:
                status = AllocationStatus.ALLOCATED
            else:
                status = AllocationStatus.PARTIAL

            allocation = self._allocations.add(
                InventoryAllocation(
                    order_id=order_line.order_id,
                    order_item_id=order_line.order_item_id,
                    warehouse_id=lot.warehouse_id,
                    lot_id=lot.lot_id,
                    allocated_quantity=quantity,
                    status=status.value,
                    created_by_id=actor_id,
                )
            )

            metadata = {"order_item_id": str(order_line.order_item_id)}
            if strategy:
                metadata["strategy"] = strategy
            with LogContext.bind(allocation_id=allocation.id):
                self._activity.record_activity(
                    entity_id=lot.lot_id,
                    action=ActivityAction.RESERVE,
                    previous_quantity=new_available + quantity,
                    quantity=quantity,
                    actor_id=actor_id,
                    order_id=order_line.order_id,
                    allocation_id=allocation.id,
                    metadata=metadata,
                )
                logger.info(
                    "allocation_committed",
                    extra={
                        "order_item_id": str(order_line.order_item_id),
                        "quantity": str(quantity),
                        "allocation_status": status.value,
                    },
                )
        return allocation

    def release_allocation(
        self,
        allocation: InventoryAllocation,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InventoryAllocation:
        """Return a held reservation to the lot; the allocation becomes RELEASED."""
        quantity = allocation.allocated_quantity
        with LogContext.bind(lot_id=allocation.lot_id, allocation_id=allocation.id):
            if allocation.lot_id is not None:
                ok, new_available = self._lots.increment_lot_quantity(allocation.lot_id, quantity)
                if not ok:
                    raise LotQuantityConflictError(str(allocation.lot_id), str(quantity), "release")
                self._activity.record_activity(
                    entity_id=allocation.lot_id,
                    action=ActivityAction.RELEASE,
                    previous_quantity=new_available - quantity,
                    quantity=quantity,
                    actor_id=actor_id,
                    comment=reason,
                    order_id=allocation.order_id,
                    allocation_id=allocation.id,
                )
            self._allocations.set_status(allocation, AllocationStatus.RELEASED.value, actor_id)
            logger.info("allocation_released", extra={"quantity": str(quantity)})
        return allocation

    def consume_allocation(
        self,
        allocation: InventoryAllocation,
        actor_id: UUID,
        shipment_id: UUID | None = None,
    ) -> InventoryAllocation:
        """
        Reserved stock physically leaves the lot: on_hand and reserved both
        drop by the allocated quantity.  The allocation becomes FULFILLED,
        and a lot emptied by this is marked out of stock.
        """
        quantity = allocation.allocated_quantity
        with LogContext.bind(lot_id=allocation.lot_id, allocation_id=allocation.id):
            if allocation.lot_id is not None:
                ok, new_on_hand = self._lots.consume_reserved(allocation.lot_id, quantity)
                if not ok:
                    raise LotQuantityConflictError(str(allocation.lot_id), str(quantity), "consume")
                self._activity.record_activity(
                    entity_id=allocation.lot_id,
                    action=ActivityAction.FULFILL,
                    previous_quantity=new_on_hand + quantity,
                    quantity=quantity,
                    actor_id=actor_id,
                    order_id=allocation.order_id,
                    allocation_id=allocation.id,
                    shipment_id=shipment_id,
                )
                if new_on_hand == ZERO:
                    self._set_lot_status(allocation.lot_id, LotStatus.OUT_OF_STOCK, actor_id)
            self._allocations.set_status(allocation, AllocationStatus.FULFILLED.value, actor_id)
            logger.info("allocation_consumed", extra={"quantity": str(quantity)})
        return allocation

    def restock_allocation(
        self,
        allocation: InventoryAllocation,
        actor_id: UUID,
        reason: str | None = None,
    ) -> InventoryAllocation:
        """Put consumed stock back on the lot; the allocation becomes RELEASED."""
        quantity = allocation.allocated_quantity
        with LogContext.bind(lot_id=allocation.lot_id, allocation_id=allocation.id):
            if allocation.lot_id is not None:
                ok, new_on_hand = self._lots.restock(allocation.lot_id, quantity)
                if not ok:
                    raise LotNotFoundError(str(allocation.lot_id))
                self._activity.record_activity(
                    entity_id=allocation.lot_id,
                    action=ActivityAction.RESTOCK,
                    previous_quantity=new_on_hand - quantity,
                    quantity=quantity,
                    actor_id=actor_id,
                    comment=reason,
                    order_id=allocation.order_id,
                    allocation_id=allocation.id,
                )
                self._mark_in_stock(allocation.lot_id, actor_id)
            self._allocations.set_status(allocation, AllocationStatus.RELEASED.value, actor_id)
            logger.info("allocation_restocked", extra={"quantity": str(quantity)})
        return allocation

    def _set_lot_status(self, lot_id: UUID, status: LotStatus, actor_id: UUID) -> None:
        lot = self._lots.get(lot_id)
        if lot is None:
            raise LotNotFoundError(str(lot_id))
        self._lots.set_status(lot, status.value, actor_id)

    def _mark_in_stock(self, lot_id: UUID, actor_id: UUID) -> None:
        lot = self._lots.get(lot_id)
        if lot is not None and lot.status == LotStatus.OUT_OF_STOCK.value:
            self._lots.set_status(lot, LotStatus.IN_STOCK.value, actor_id)

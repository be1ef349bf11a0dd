"""
FulfillmentOrchestrator -- drives orders, shipments and fulfillments through
their workflows.

Responsibility:
    Every order status write in the kernel goes through this service.  It
    validates each transition against ``domain.workflow`` (no state can be
    skipped), writes order status with a compare-and-set, and performs the
    stock movements a transition implies:

        ALLOCATED | PARTIAL -> FULFILLED   reserved stock is consumed
        shipment -> SHIPPED                order already FULFILLED, tracking
                                           required, shipped_at set
        any -> CANCELLED                   reservations released, consumed
                                           stock restocked, open shipments
                                           and fulfillments cancelled

Architecture position:
    Kernel > Services.  Flush-only; AllocationService owns the transaction.

Failure modes:
    - OrderNotFoundError / ShipmentNotFoundError / AllocationNotFoundError.
    - InvalidStatusTransitionError: the workflow does not list the move.
    - FulfillmentPreconditionError: a guard does not hold (allocations not
      packed, tracking missing, order not allocated).
    - MultipleWarehouseShipmentError: allocations span warehouses.
    - StatusConflictError: another transaction changed the order status
      between read and write.  Retryable.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import FulfillmentProgress
from fulfillment_kernel.domain.policy import FulfillmentPolicy
from fulfillment_kernel.domain.workflow import (
    FULFILLMENT_WORKFLOW,
    ORDER_WORKFLOW,
    SHIPMENT_WORKFLOW,
    state_name,
    validate_transition,
)
from fulfillment_kernel.exceptions import (
    AllocationNotFoundError,
    FulfillmentPreconditionError,
    MultipleWarehouseShipmentError,
    OrderNotFoundError,
    ShipmentNotFoundError,
    StatusConflictError,
)
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.allocation import AllocationStatus, InventoryAllocation
from fulfillment_kernel.models.order import Order, OrderStatus
from fulfillment_kernel.models.shipment import (
    FulfillmentStatus,
    OrderFulfillment,
    Shipment,
    ShipmentBatch,
    ShipmentStatus,
)
from fulfillment_kernel.repositories.allocation_repository import SqlAllocationRepository
from fulfillment_kernel.repositories.base import translate_persistence_errors
from fulfillment_kernel.repositories.order_repository import SqlOrderRepository
from fulfillment_kernel.repositories.shipment_repository import SqlShipmentRepository
from fulfillment_kernel.services.allocation_writer import AllocationWriter
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.fulfillment_orchestrator")

_SHIPPABLE_ORDER_STATUSES = (OrderStatus.ALLOCATED.value, OrderStatus.PARTIAL.value)

# Entered only through on_allocation_committed and settle_allocation
_ALLOCATION_PHASE_STATUSES = (
    OrderStatus.ALLOCATING.value,
    OrderStatus.PARTIAL.value,
    OrderStatus.ALLOCATED.value,
)


class FulfillmentOrchestrator(BaseService):
    """Order, shipment and fulfillment lifecycle transitions."""

    def __init__(
        self,
        session: Session,
        policy: FulfillmentPolicy | None = None,
        clock: Clock | None = None,
        order_repository: SqlOrderRepository | None = None,
        allocation_repository: SqlAllocationRepository | None = None,
        shipment_repository: SqlShipmentRepository | None = None,
        allocation_writer: AllocationWriter | None = None,
    ):
        super().__init__(session)
        self._policy = policy or FulfillmentPolicy()
        self._clock = clock or SystemClock()
        self._orders = order_repository or SqlOrderRepository(session)
        self._allocations = allocation_repository or SqlAllocationRepository(session)
        self._shipments = shipment_repository or SqlShipmentRepository(session)
        self._writer = allocation_writer or AllocationWriter(
            session, self._clock, allocation_repository=self._allocations
        )

    # -------------------------------------------------------------------------
    # Order status
    # -------------------------------------------------------------------------

    def _load_order(self, order_id: UUID, *, for_update: bool = False) -> Order:
        order = self._orders.get_order(order_id, for_update=for_update)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def _transition_order(
        self, order_id: UUID, current: str, target: str, actor_id: UUID
    ) -> str:
        """Validate, then compare-and-set.  Returns the new status."""
        transition = validate_transition(ORDER_WORKFLOW, current, target)
        if not self._orders.compare_and_set_status(
            order_id, transition.from_state, transition.to_state, actor_id
        ):
            logger.warning(
                "order_status_conflict",
                extra={
                    "order_id": str(order_id),
                    "expected_status": transition.from_state,
                    "target_status": transition.to_state,
                },
            )
            raise StatusConflictError("order", str(order_id), transition.from_state)

        logger.info(
            "order_status_changed",
            extra={
                "order_id": str(order_id),
                "from_status": transition.from_state,
                "to_status": transition.to_state,
                "transition_action": transition.action,
            },
        )
        return transition.to_state

    def order_status(self, order_id: UUID) -> str:
        return self._load_order(order_id).status

    def _coverage_target(self, order_id: UUID) -> str:
        snapshot = self._orders.get_order_status_and_items(order_id)
        if snapshot is None:
            raise OrderNotFoundError(str(order_id))
        if snapshot.all_items_covered:
            return OrderStatus.ALLOCATED.value
        return OrderStatus.PARTIAL.value

    def on_allocation_committed(self, order_id: UUID, actor_id: UUID) -> str:
        """
        Advance the order after an allocation was written.

        CONFIRMED and PARTIAL orders move to ALLOCATING; an ALLOCATING order
        whose items are now fully covered moves on to ALLOCATED.  An order
        still under-covered stays ALLOCATING until ``settle_allocation``.
        """
        status = self._load_order(order_id).status
        if status in (OrderStatus.CONFIRMED.value, OrderStatus.PARTIAL.value):
            status = self._transition_order(
                order_id, status, OrderStatus.ALLOCATING.value, actor_id
            )
        if status == OrderStatus.ALLOCATING.value:
            if self._coverage_target(order_id) == OrderStatus.ALLOCATED.value:
                status = self._transition_order(
                    order_id, status, OrderStatus.ALLOCATED.value, actor_id
                )
        return status

    def settle_allocation(self, order_id: UUID, actor_id: UUID) -> str:
        """
        Close an allocation pass: ALLOCATING becomes ALLOCATED or PARTIAL by
        coverage.  Settling an order already in its coverage state is a no-op.
        """
        status = self._load_order(order_id, for_update=True).status
        target = self._coverage_target(order_id)
        if status == target:
            return status
        return self._transition_order(order_id, status, target, actor_id)

    # -------------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------------

    def create_shipment(
        self,
        order_id: UUID,
        actor_id: UUID,
        allocation_ids: Sequence[UUID] | None = None,
        notes: str | None = None,
    ) -> Shipment:
        """
        Pack reserved allocations of an ALLOCATED or PARTIAL order into a new
        shipment.

        Without ``allocation_ids`` every reserved allocation not yet in a
        shipment is packed.  One OrderFulfillment row is written per order
        item, carrying the summed allocation quantity.
        """
        order = self._load_order(order_id, for_update=True)
        if order.status not in _SHIPPABLE_ORDER_STATUSES:
            raise FulfillmentPreconditionError(
                str(order_id),
                f"order must be one of {list(_SHIPPABLE_ORDER_STATUSES)} to ship, "
                f"current status is {order.status}",
            )

        if allocation_ids:
            requested = list(dict.fromkeys(allocation_ids))
            allocations = self._allocations.list_by_ids(order_id, requested)
            missing = set(requested) - {a.id for a in allocations}
            if missing:
                raise AllocationNotFoundError(str(order_id), sorted(str(m) for m in missing))
            not_reserved = [a for a in allocations if not a.holds_reservation]
            if not_reserved:
                raise FulfillmentPreconditionError(
                    str(order_id),
                    f"allocations are not reserved: {sorted(str(a.id) for a in not_reserved)}",
                )
            packed = self._shipments.shipped_allocation_ids([a.id for a in allocations])
            if packed:
                raise FulfillmentPreconditionError(
                    str(order_id),
                    f"allocations already packed: {sorted(str(p) for p in packed)}",
                )
        else:
            reserved = [
                a for a in self._allocations.list_for_order(order_id, live_only=True)
                if a.holds_reservation
            ]
            packed = self._shipments.shipped_allocation_ids([a.id for a in reserved])
            allocations = [a for a in reserved if a.id not in packed]
            if not allocations:
                raise AllocationNotFoundError(str(order_id))

        warehouse_ids = sorted({str(a.warehouse_id) for a in allocations})
        if len(warehouse_ids) > 1:
            raise MultipleWarehouseShipmentError(str(order_id), warehouse_ids)

        shipment = self._shipments.add(
            Shipment(
                order_id=order_id,
                warehouse_id=allocations[0].warehouse_id,
                status=ShipmentStatus.PENDING.value,
                notes=notes,
                created_by_id=actor_id,
            )
        )

        per_item: dict[UUID, Decimal] = defaultdict(Decimal)
        for allocation in allocations:
            self._shipments.add_batch(
                ShipmentBatch(
                    shipment=shipment,
                    allocation_id=allocation.id,
                    lot_id=allocation.lot_id,
                    quantity_shipped=allocation.allocated_quantity,
                    created_by_id=actor_id,
                )
            )
            per_item[allocation.order_item_id] += allocation.allocated_quantity

        for order_item_id, quantity in per_item.items():
            self._shipments.add_fulfillment(
                OrderFulfillment(
                    shipment=shipment,
                    order_id=order_id,
                    order_item_id=order_item_id,
                    quantity_fulfilled=quantity,
                    status=FulfillmentStatus.PENDING.value,
                    created_by_id=actor_id,
                )
            )

        logger.info(
            "shipment_created",
            extra={
                "order_id": str(order_id),
                "shipment_id": str(shipment.id),
                "warehouse_id": warehouse_ids[0],
                "allocation_count": len(allocations),
                "item_count": len(per_item),
            },
        )
        return shipment

    def attach_tracking(
        self,
        shipment_id: UUID,
        tracking_number: str,
        carrier: str | None,
        actor_id: UUID,
    ) -> Shipment:
        shipment = self._shipments.get_for_update(shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(str(shipment_id))
        if SHIPMENT_WORKFLOW.is_terminal(shipment.status):
            raise FulfillmentPreconditionError(
                str(shipment.order_id), f"shipment {shipment_id} is {shipment.status}"
            )
        tracking_number = (tracking_number or "").strip()
        if not tracking_number:
            raise FulfillmentPreconditionError(
                str(shipment.order_id), "tracking number must not be blank"
            )

        with translate_persistence_errors("attach_tracking"):
            shipment.tracking_number = tracking_number
            shipment.carrier = carrier
            shipment.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "tracking_attached",
            extra={"shipment_id": str(shipment_id), "carrier": carrier},
        )
        return shipment

    # -------------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------------

    def advance_fulfillment(
        self,
        order_id: UUID,
        target_order_status: OrderStatus | str | None,
        target_shipment_status: ShipmentStatus | str | None,
        target_fulfillment_status: FulfillmentStatus | str | None,
        actor_id: UUID,
        shipment_id: UUID | None = None,
    ) -> FulfillmentProgress:
        """
        Move the order, its shipments and its fulfillment rows forward.

        A ``None`` target leaves that entity alone; a shipment or
        fulfillment already at its target is left as is.  Every transition
        is validated before anything is written.

        Allocation-phase order statuses (ALLOCATING, PARTIAL, ALLOCATED)
        are not valid targets: they follow from stock coverage and are set
        by allocation and ``settle_allocation``.  Shipments and fulfillment
        rows move to SHIPPED only once the order is FULFILLED.

        Args:
            shipment_id: Restrict shipment and fulfillment changes to one
                shipment of the order.
        """
        order_target = state_name(target_order_status) if target_order_status else None
        shipment_target = state_name(target_shipment_status) if target_shipment_status else None
        fulfillment_target = (
            state_name(target_fulfillment_status) if target_fulfillment_status else None
        )

        if order_target == OrderStatus.CANCELLED.value:
            return self.cancel_order(order_id, actor_id)

        order = self._load_order(order_id, for_update=True)
        current = order.status

        if order_target in _ALLOCATION_PHASE_STATUSES:
            raise FulfillmentPreconditionError(
                str(order_id),
                f"order status {order_target} follows from allocation coverage "
                "and cannot be set directly",
            )

        shipments = [
            s for s in self._shipments.list_for_order(order_id)
            if s.status != ShipmentStatus.CANCELLED.value
        ]
        if shipment_id is not None:
            shipments = [s for s in shipments if s.id == shipment_id]
            if not shipments:
                raise ShipmentNotFoundError(str(shipment_id))
        shipment_ids = {s.id for s in shipments}
        fulfillments = [
            f for f in self._shipments.list_fulfillments(order_id)
            if f.shipment_id in shipment_ids and f.status != FulfillmentStatus.CANCELLED.value
        ]

        # Validate every move before writing any of them
        if shipment_target:
            for shipment in shipments:
                if shipment.status != shipment_target:
                    validate_transition(SHIPMENT_WORKFLOW, shipment.status, shipment_target)
        if fulfillment_target:
            for fulfillment in fulfillments:
                if fulfillment.status != fulfillment_target:
                    validate_transition(FULFILLMENT_WORKFLOW, fulfillment.status, fulfillment_target)
        if order_target:
            validate_transition(ORDER_WORKFLOW, current, order_target)

        shipment_after = {s.id: shipment_target or s.status for s in shipments}
        fulfillment_after = {f.id: fulfillment_target or f.status for f in fulfillments}

        shipping = [
            s for s in shipments
            if shipment_target == ShipmentStatus.SHIPPED.value and s.status != shipment_target
        ]
        shipping_items = [
            f for f in fulfillments
            if fulfillment_target == FulfillmentStatus.SHIPPED.value and f.status != fulfillment_target
        ]
        if (shipping or shipping_items) and current != OrderStatus.FULFILLED.value:
            raise FulfillmentPreconditionError(
                str(order_id),
                f"order must be fulfilled before anything ships, current status is {current}",
            )
        if self._policy.require_tracking_for_shipment:
            untracked = [s for s in shipping if not s.has_tracking]
            if untracked:
                raise FulfillmentPreconditionError(
                    str(order_id),
                    f"shipments need tracking before dispatch: {sorted(str(s.id) for s in untracked)}",
                )

        live = self._allocations.list_for_order(order_id, live_only=True)
        if order_target == OrderStatus.FULFILLED.value:
            self._check_fulfillable(order_id, live, shipment_after, fulfillment_after)
        if order_target == OrderStatus.SHIPPED.value:
            self._check_shippable(order_id, shipment_after)

        # Writes
        for shipment in shipments:
            if shipment_target and shipment.status != shipment_target:
                self._shipments.set_status(shipment, shipment_target, actor_id)
        for fulfillment in fulfillments:
            if fulfillment_target and fulfillment.status != fulfillment_target:
                self._shipments.set_status(fulfillment, fulfillment_target, actor_id)

        batch_shipment = {
            b.allocation_id: b.shipment_id
            for b in self._shipments.list_batches_for_order(order_id)
        }
        consumed: list[UUID] = []
        if order_target == OrderStatus.FULFILLED.value:
            for allocation in live:
                if allocation.holds_reservation:
                    self._writer.consume_allocation(
                        allocation, actor_id, shipment_id=batch_shipment.get(allocation.id)
                    )
                    consumed.append(allocation.id)

        for shipment in shipping:
            self._dispatch(shipment, live, batch_shipment, actor_id)

        new_status = current
        if order_target:
            new_status = self._transition_order(order_id, current, order_target, actor_id)

        logger.info(
            "fulfillment_advanced",
            extra={
                "order_id": str(order_id),
                "order_status": new_status,
                "shipment_status": shipment_target,
                "fulfillment_status": fulfillment_target,
                "shipment_count": len(shipments),
                "consumed_count": len(consumed),
            },
        )
        return FulfillmentProgress(
            order_id=order_id,
            order_status=new_status,
            shipment_ids=tuple(s.id for s in shipments),
            consumed_allocation_ids=tuple(consumed),
        )

    def _check_fulfillable(
        self,
        order_id: UUID,
        live: list[InventoryAllocation],
        shipment_after: dict[UUID, str],
        fulfillment_after: dict[UUID, str],
    ) -> None:
        if not live:
            raise FulfillmentPreconditionError(str(order_id), "order has no allocations")
        packed = self._shipments.shipped_allocation_ids([a.id for a in live])
        unpacked = [a for a in live if a.id not in packed]
        if unpacked:
            raise FulfillmentPreconditionError(
                str(order_id),
                f"allocations not packed into a shipment: {sorted(str(a.id) for a in unpacked)}",
            )
        packed_value = ShipmentStatus.PACKED.value
        if not shipment_after or any(s != packed_value for s in shipment_after.values()):
            raise FulfillmentPreconditionError(
                str(order_id), "every shipment must be packed to fulfill the order"
            )
        if any(f != FulfillmentStatus.PACKED.value for f in fulfillment_after.values()):
            raise FulfillmentPreconditionError(
                str(order_id), "every fulfillment must be packed to fulfill the order"
            )

    def _check_shippable(self, order_id: UUID, shipment_after: dict[UUID, str]) -> None:
        if not shipment_after or any(
            s != ShipmentStatus.SHIPPED.value for s in shipment_after.values()
        ):
            raise FulfillmentPreconditionError(
                str(order_id), "every shipment must be shipped to ship the order"
            )

    def _dispatch(
        self,
        shipment: Shipment,
        live: list[InventoryAllocation],
        batch_shipment: dict[UUID, UUID],
        actor_id: UUID,
    ) -> None:
        """Stamp shipped_at and mark the shipment's consumed allocations SHIPPED."""
        with translate_persistence_errors("dispatch_shipment"):
            shipment.shipped_at = self._clock.now()
            self.session.flush()
        for allocation in live:
            if (
                batch_shipment.get(allocation.id) == shipment.id
                and allocation.status == AllocationStatus.FULFILLED.value
            ):
                self._allocations.set_status(allocation, AllocationStatus.SHIPPED.value, actor_id)
        logger.info(
            "shipment_dispatched",
            extra={"shipment_id": str(shipment.id), "tracking_number": shipment.tracking_number},
        )

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    def cancel_order(
        self, order_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> FulfillmentProgress:
        """
        Cancel an order from any non-terminal state.

        Reserved allocations are released.  Consumed (FULFILLED)
        allocations are restocked when the policy says so.  Pending and
        packed shipments and their fulfillment rows are cancelled.
        Allocations already SHIPPED are left alone.
        """
        order = self._load_order(order_id, for_update=True)
        current = order.status
        validate_transition(ORDER_WORKFLOW, current, OrderStatus.CANCELLED.value)

        released: list[UUID] = []
        for allocation in self._allocations.list_for_order(order_id, live_only=True):
            if allocation.holds_reservation:
                self._writer.release_allocation(allocation, actor_id, reason=reason)
                released.append(allocation.id)
            elif (
                allocation.status == AllocationStatus.FULFILLED.value
                and self._policy.restock_on_cancel
            ):
                self._writer.restock_allocation(allocation, actor_id, reason=reason)
                released.append(allocation.id)

        cancelled_shipments = []
        for shipment in self._shipments.list_for_order(order_id):
            if not SHIPMENT_WORKFLOW.is_terminal(shipment.status):
                self._shipments.set_status(shipment, ShipmentStatus.CANCELLED.value, actor_id)
                cancelled_shipments.append(shipment.id)
        for fulfillment in self._shipments.list_fulfillments(order_id):
            if not FULFILLMENT_WORKFLOW.is_terminal(fulfillment.status):
                self._shipments.set_status(
                    fulfillment, FulfillmentStatus.CANCELLED.value, actor_id
                )

        new_status = self._transition_order(
            order_id, current, OrderStatus.CANCELLED.value, actor_id
        )
        logger.info(
            "order_cancelled",
            extra={
                "order_id": str(order_id),
                "from_status": current,
                "released_count": len(released),
                "cancelled_shipment_count": len(cancelled_shipments),
                "reason": reason,
            },
        )
        return FulfillmentProgress(
            order_id=order_id,
            order_status=new_status,
            shipment_ids=tuple(cancelled_shipments),
            released_allocation_ids=tuple(released),
        )

"""
AllocationSelector -- read models over allocations, lot trails and shipments.

Allocated-to-date is always derived from live allocation rows; there is no
stored running total to drift.
"""

from uuid import UUID

from fulfillment_kernel.domain.dtos import (
    ActivityEntryRecord,
    AllocationRecord,
    ItemCoverage,
    OrderAllocationSummary,
    ShipmentRecord,
)
from fulfillment_kernel.exceptions import OrderNotFoundError
from fulfillment_kernel.repositories.activity_log_repository import SqlActivityLogRepository
from fulfillment_kernel.repositories.allocation_repository import SqlAllocationRepository
from fulfillment_kernel.repositories.order_repository import SqlOrderRepository
from fulfillment_kernel.repositories.shipment_repository import SqlShipmentRepository
from fulfillment_kernel.selectors.base import BaseSelector


class AllocationSelector(BaseSelector):
    """Read-side queries for the allocation and fulfillment kernel."""

    def get_order_allocation_summary(self, order_id: UUID) -> OrderAllocationSummary:
        """
        Order status, per-item coverage and live allocations.

        Raises:
            OrderNotFoundError: if the order does not exist.
        """
        snapshot = SqlOrderRepository(self.session).get_order_status_and_items(order_id)
        if snapshot is None:
            raise OrderNotFoundError(str(order_id))
        allocations = SqlAllocationRepository(self.session).list_for_order(
            order_id, live_only=True
        )
        return OrderAllocationSummary(
            order_id=snapshot.order_id,
            status=snapshot.status,
            items=tuple(
                ItemCoverage(
                    order_item_id=item.order_item_id,
                    product_id=item.product_id,
                    quantity_ordered=item.quantity_ordered,
                    quantity_allocated=item.quantity_allocated,
                )
                for item in snapshot.items
            ),
            allocations=tuple(AllocationRecord.from_model(a) for a in allocations),
        )

    def list_allocations(
        self, order_id: UUID, *, live_only: bool = False
    ) -> list[AllocationRecord]:
        allocations = SqlAllocationRepository(self.session).list_for_order(
            order_id, live_only=live_only
        )
        return [AllocationRecord.from_model(a) for a in allocations]

    def get_lot_activity_trail(self, lot_id: UUID) -> list[ActivityEntryRecord]:
        """A lot's activity entries in sequence order."""
        entries = SqlActivityLogRepository(self.session).list_for_lot(lot_id)
        return [ActivityEntryRecord.from_model(e) for e in entries]

    def get_order_activity(self, order_id: UUID) -> list[ActivityEntryRecord]:
        entries = SqlActivityLogRepository(self.session).list_for_order(order_id)
        return [ActivityEntryRecord.from_model(e) for e in entries]

    def list_shipments(self, order_id: UUID) -> list[ShipmentRecord]:
        shipments = SqlShipmentRepository(self.session).list_for_order(order_id)
        return [ShipmentRecord.from_model(s) for s in shipments]

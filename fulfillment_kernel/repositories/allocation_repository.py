"""SQLAlchemy adapter for the AllocationRepository port."""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from fulfillment_kernel.models.allocation import (
    LIVE_ALLOCATION_STATUSES,
    InventoryAllocation,
)
from fulfillment_kernel.repositories.base import BaseRepository, translate_persistence_errors


class SqlAllocationRepository(BaseRepository[InventoryAllocation]):
    """Append-only allocation rows."""

    model = InventoryAllocation

    def list_for_order(
        self, order_id: UUID, *, live_only: bool = False
    ) -> list[InventoryAllocation]:
        stmt = (
            select(InventoryAllocation)
            .where(InventoryAllocation.order_id == order_id)
            .order_by(InventoryAllocation.created_at, InventoryAllocation.id)
        )
        if live_only:
            stmt = stmt.where(InventoryAllocation.status.in_(LIVE_ALLOCATION_STATUSES))
        with translate_persistence_errors("list_allocations"):
            return list(self.session.execute(stmt).scalars().all())

    def list_by_ids(self, order_id: UUID, allocation_ids: Sequence[UUID]) -> list[InventoryAllocation]:
        stmt = (
            select(InventoryAllocation)
            .where(InventoryAllocation.order_id == order_id)
            .where(InventoryAllocation.id.in_(list(allocation_ids)))
            .order_by(InventoryAllocation.created_at, InventoryAllocation.id)
        )
        with translate_persistence_errors("list_allocations_by_id"):
            return list(self.session.execute(stmt).scalars().all())

    def allocated_quantity_for_item(self, order_item_id: UUID) -> Decimal:
        """Sum of live allocations for one order item (0 if none)."""
        stmt = (
            select(func.coalesce(func.sum(InventoryAllocation.allocated_quantity), 0))
            .where(InventoryAllocation.order_item_id == order_item_id)
            .where(InventoryAllocation.status.in_(LIVE_ALLOCATION_STATUSES))
        )
        with translate_persistence_errors("allocated_quantity_for_item"):
            total = self.session.execute(stmt).scalar_one()
        return Decimal(str(total))

    def set_status(self, allocation: InventoryAllocation, status: str, actor_id: UUID) -> None:
        """Progress an allocation's status.  Frozen fields are guarded by ORM listeners."""
        with translate_persistence_errors("set_allocation_status"):
            allocation.status = status
            allocation.updated_by_id = actor_id
            self.session.flush()

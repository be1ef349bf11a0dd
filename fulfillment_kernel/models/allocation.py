"""
Module: fulfillment_kernel.models.allocation
Responsibility: ORM persistence for inventory allocations, i.e. reservations
    of a quantity from one lot against one order item.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    A1 -- allocated_quantity > 0 (CHECK).
    A2 -- Append-only.  order/item/warehouse/lot references and
          allocated_quantity are frozen at creation; only status (and its
          audit metadata) may progress.  Rows are never deleted.
          Enforced by ORM listeners in db/immutability.py.

Audit relevance:
    Every allocation row has a RESERVE activity log entry written in the
    same transaction.  Releases and consumption are new log entries, never
    edits of the allocation quantity.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString


class AllocationStatus(str, Enum):
    """Allocation lifecycle status.

    PARTIAL / ALLOCATED reflect order item coverage at allocation time.
    """

    PARTIAL = "partial"
    ALLOCATED = "allocated"
    FULFILLED = "fulfilled"
    SHIPPED = "shipped"
    RELEASED = "released"


# Statuses that still hold (or have consumed) stock against the order item.
LIVE_ALLOCATION_STATUSES = frozenset({
    AllocationStatus.PARTIAL.value,
    AllocationStatus.ALLOCATED.value,
    AllocationStatus.FULFILLED.value,
    AllocationStatus.SHIPPED.value,
})

# Statuses whose stock is still reserved on the lot.
RESERVING_ALLOCATION_STATUSES = frozenset({
    AllocationStatus.PARTIAL.value,
    AllocationStatus.ALLOCATED.value,
})


class InventoryAllocation(TrackedBase):
    """
    A reservation of stock from a lot against an order item.

    Guarantees:
        - Frozen fields never change after INSERT (A2).
        - status moves PARTIAL|ALLOCATED -> FULFILLED -> SHIPPED, or to
          RELEASED on cancellation.
    """

    __tablename__ = "inventory_allocations"

    __table_args__ = (
        CheckConstraint(
            "allocated_quantity > 0",
            name="ck_allocation_positive_quantity",
        ),
        Index("idx_allocation_order", "order_id"),
        Index("idx_allocation_order_item", "order_item_id"),
        Index("idx_allocation_lot", "lot_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    order_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("order_items.id"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_lots.id"),
        nullable=True,
    )

    allocated_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_ALLOCATION_STATUSES

    @property
    def holds_reservation(self) -> bool:
        return self.status in RESERVING_ALLOCATION_STATUSES

    def __repr__(self) -> str:
        return (
            f"<InventoryAllocation {self.id}: lot={self.lot_id} "
            f"qty={self.allocated_quantity} status={self.status}>"
        )

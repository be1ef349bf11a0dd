"""
Module: fulfillment_kernel.models.order
Responsibility: ORM persistence for customer orders and their line items.
Architecture position: Kernel > Models.  May import from db/ only.

Orders are owned by the order subsystem.  The kernel reads them and mutates
exactly one column, ``Order.status``, through the fulfillment orchestrator's
compare-and-set update.  Allocated-to-date quantity is NOT stored on the
item; it is derived from non-released InventoryAllocation rows.

Invariants enforced:
    - Each OrderItem references exactly one product: a SKU or a packaging
      material (CHECK constraint).
    - quantity_ordered > 0 (CHECK constraint).
    - Sum of live allocations per item <= quantity_ordered (enforced by the
      gatekeeper and re-checked by the allocation writer under lock).
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import TrackedBase, UUIDString


class OrderStatus(str, Enum):
    """Order lifecycle status.

    PENDING is a pre-core state; it is never allocatable.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ALLOCATING = "allocating"
    PARTIAL = "partial"
    ALLOCATED = "allocated"
    FULFILLED = "fulfilled"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class OrderItemStatus(str, Enum):
    """Line item status, maintained by the order subsystem."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class Order(TrackedBase):
    """
    A customer order.

    Guarantees:
        - order_number is unique.
        - status holds an OrderStatus value.
    """

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_status", "status"),
    )

    order_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    # Order category (e.g. sales, sample, replacement)
    category: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
    )

    items: Mapped[list[OrderItem]] = relationship(
        back_populates="order",
        order_by="OrderItem.line_number",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(TrackedBase):
    """
    One ordered product on an order.

    The product reference is either ``sku_id`` or ``packaging_material_id``;
    ``product_id`` returns whichever is set.
    """

    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint(
            "(sku_id IS NULL) <> (packaging_material_id IS NULL)",
            name="ck_order_item_single_product",
        ),
        CheckConstraint(
            "quantity_ordered > 0",
            name="ck_order_item_positive_quantity",
        ),
        Index("idx_order_item_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=1,
    )

    sku_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    packaging_material_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    quantity_ordered: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderItemStatus.CONFIRMED.value,
        nullable=False,
    )

    order: Mapped[Order] = relationship(back_populates="items")

    @property
    def product_id(self) -> UUID:
        return self.sku_id if self.sku_id is not None else self.packaging_material_id

    @property
    def product_kind(self) -> str:
        return "sku" if self.sku_id is not None else "packaging_material"

    def __repr__(self) -> str:
        return (
            f"<OrderItem {self.id}: product={self.product_id} "
            f"qty={self.quantity_ordered} status={self.status}>"
        )

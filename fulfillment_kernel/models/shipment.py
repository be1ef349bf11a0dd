"""
Module: fulfillment_kernel.models.shipment
Responsibility: ORM persistence for outbound shipments, the allocation
    batches packed into them, and per-item fulfillment records.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    S1 -- A shipment ships from exactly one warehouse.
    S2 -- An allocation belongs to at most one shipment (unique
          ShipmentBatch.allocation_id).
    S3 -- ShipmentBatch rows are immutable (db/immutability.py).
    S4 -- One OrderFulfillment per (order item, shipment).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment_kernel.db.base import Base, TrackedBase, UUIDString


class ShipmentStatus(str, Enum):
    """Shipment lifecycle: PENDING -> PACKED -> SHIPPED, or CANCELLED."""

    PENDING = "pending"
    PACKED = "packed"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class FulfillmentStatus(str, Enum):
    """Per-item fulfillment lifecycle: PENDING -> PICKING -> PACKED -> SHIPPED."""

    PENDING = "pending"
    PICKING = "picking"
    PACKED = "packed"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


class Shipment(TrackedBase):
    """A physical outbound shipment for one order from one warehouse."""

    __tablename__ = "outbound_shipments"

    __table_args__ = (
        Index("idx_shipment_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=ShipmentStatus.PENDING.value,
        nullable=False,
    )

    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    carrier: Mapped[str | None] = mapped_column(String(50), nullable=True)

    shipped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    batches: Mapped[list[ShipmentBatch]] = relationship(
        back_populates="shipment",
        order_by="ShipmentBatch.created_at",
    )

    fulfillments: Mapped[list[OrderFulfillment]] = relationship(
        back_populates="shipment",
    )

    @property
    def has_tracking(self) -> bool:
        return bool(self.tracking_number and self.tracking_number.strip())

    def __repr__(self) -> str:
        return f"<Shipment {self.id}: order={self.order_id} status={self.status}>"


class ShipmentBatch(Base):
    """One allocation packed into a shipment.  Immutable once written."""

    __tablename__ = "shipment_batches"

    __table_args__ = (
        UniqueConstraint("allocation_id", name="uq_shipment_batch_allocation"),
        CheckConstraint(
            "quantity_shipped > 0",
            name="ck_shipment_batch_positive_quantity",
        ),
        Index("idx_shipment_batch_shipment", "shipment_id"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("outbound_shipments.id"),
        nullable=False,
    )

    allocation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_allocations.id"),
        nullable=False,
    )

    lot_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_lots.id"),
        nullable=True,
    )

    quantity_shipped: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    shipment: Mapped[Shipment] = relationship(back_populates="batches")


class OrderFulfillment(TrackedBase):
    """Quantity of one order item packed into one shipment."""

    __tablename__ = "order_fulfillments"

    __table_args__ = (
        UniqueConstraint("order_item_id", "shipment_id", name="uq_fulfillment_item_shipment"),
        Index("idx_fulfillment_order", "order_id"),
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

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("outbound_shipments.id"),
        nullable=False,
    )

    quantity_fulfilled: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=FulfillmentStatus.PENDING.value,
        nullable=False,
    )

    shipment: Mapped[Shipment] = relationship(back_populates="fulfillments")

"""
Module: fulfillment_kernel.models.inventory_lot
Responsibility: ORM persistence for physical inventory lots held in a
    warehouse.  A lot is a traceable batch of one product with its own
    quantities and receipt/expiry dates.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    L1 -- on_hand_quantity >= 0 (CHECK).
    L2 -- 0 <= reserved_quantity <= on_hand_quantity (CHECK), so
          available = on_hand - reserved is never negative.
    L3 -- Exactly one product reference (sku or packaging material).
    L4 -- (warehouse_id, lot_number) is unique.

Shared resource policy:
    on_hand_quantity and reserved_quantity are written ONLY by the
    allocation writer's conditional UPDATE statements and by lot intake
    when a lot is first created.  Any other write path is a bug.

Failure modes:
    - IntegrityError if a write would violate L1/L2 (translated to a
      conflict at the repository boundary).
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import TrackedBase, UUIDString


class LotStatus(str, Enum):
    """Lot lifecycle status."""

    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    QUARANTINED = "quarantined"
    EXPIRED = "expired"


class InventoryLot(TrackedBase):
    """
    A lot of one product in one warehouse.

    Guarantees:
        - available_quantity == on_hand_quantity - reserved_quantity >= 0.
        - (warehouse_id, expiry_date) and (warehouse_id, inbound_date)
          indexes support FEFO and FIFO candidate scans.
    """

    __tablename__ = "inventory_lots"

    __table_args__ = (
        CheckConstraint(
            "on_hand_quantity >= 0",
            name="ck_lot_on_hand_non_negative",
        ),
        CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= on_hand_quantity",
            name="ck_lot_reserved_within_on_hand",
        ),
        CheckConstraint(
            "(sku_id IS NULL) <> (packaging_material_id IS NULL)",
            name="ck_lot_single_product",
        ),
        UniqueConstraint("warehouse_id", "lot_number", name="uq_lot_warehouse_number"),
        Index("idx_lot_sku_warehouse", "sku_id", "warehouse_id"),
        Index("idx_lot_packaging_warehouse", "packaging_material_id", "warehouse_id"),
        Index("idx_lot_warehouse_expiry", "warehouse_id", "expiry_date"),
        Index("idx_lot_warehouse_inbound", "warehouse_id", "inbound_date"),
    )

    warehouse_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    sku_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    packaging_material_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    lot_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    on_hand_quantity: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    reserved_quantity: Mapped[Decimal] = mapped_column(
        nullable=False,
        default=Decimal("0"),
    )

    manufacture_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # FEFO sort key
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # FIFO sort key
    inbound_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=LotStatus.IN_STOCK.value,
        nullable=False,
    )

    @property
    def product_id(self) -> UUID:
        return self.sku_id if self.sku_id is not None else self.packaging_material_id

    @property
    def available_quantity(self) -> Decimal:
        return self.on_hand_quantity - self.reserved_quantity

    def __repr__(self) -> str:
        return (
            f"<InventoryLot {self.lot_number}: on_hand={self.on_hand_quantity} "
            f"reserved={self.reserved_quantity} status={self.status}>"
        )

"""
Module: fulfillment_kernel.models.activity_log
Responsibility: ORM persistence for the inventory activity log, the
    tamper-evident audit trail of every lot quantity mutation.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    G1 -- new_quantity == previous_quantity + quantity_change, exactly.
          quantity_change is signed: negative for deductions.  ADJUST is
          the only action whose sign is chosen by the caller.
    G2 -- checksum == SHA-256 over (lot id, previous quantity, new quantity,
          occurred_at, actor id); see utils/hashing.py.
    G3 -- Always immutable.  No UPDATE, no DELETE, ever (db/immutability.py).
    G4 -- (lot_id, sequence) is unique; sequence orders the trail of a lot.

Audit relevance:
    Replaying a lot's trail in sequence order from zero must reproduce the
    lot's current on-hand and reserved quantities.  A gap or edited row
    breaks either the checksum or the replay.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fulfillment_kernel.db.base import Base, UUIDString


class ActivityAction(str, Enum):
    """Kind of quantity mutation recorded on a lot."""

    RECEIVE = "receive"
    RESERVE = "reserve"
    RELEASE = "release"
    FULFILL = "fulfill"
    RESTOCK = "restock"
    ADJUST = "adjust"


class AdjustmentType(str, Enum):
    """Reason recorded for a manual ADJUST entry."""

    DAMAGED = "damaged"
    LOST = "lost"
    FOUND = "found"
    COUNT_CORRECTION = "count_correction"


class QuantityBasis(str, Enum):
    """Which lot quantity an entry's previous/new values describe."""

    AVAILABLE = "available"
    ON_HAND = "on_hand"


class InventoryActivityLog(Base):
    """
    One immutable audit row for a lot quantity change.

    Guarantees:
        - G1..G4 above.
        - order_id / allocation_id / shipment_id link the entry to the
          operation that caused it, when there is one.
    """

    __tablename__ = "inventory_activity_logs"

    __table_args__ = (
        UniqueConstraint("lot_id", "sequence", name="uq_activity_lot_sequence"),
        Index("idx_activity_lot", "lot_id"),
        Index("idx_activity_order", "order_id"),
        Index("idx_activity_occurred_at", "occurred_at"),
    )

    lot_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_lots.id"),
        nullable=False,
    )

    # Per-lot monotonic position in the trail (1-based)
    sequence: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    action: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    quantity_basis: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    previous_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    quantity_change: Mapped[Decimal] = mapped_column(nullable=False)

    new_quantity: Mapped[Decimal] = mapped_column(nullable=False)

    actor_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    checksum: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    allocation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    shipment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    comment: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    # "metadata" is reserved on declarative classes
    activity_metadata: Mapped[dict | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryActivityLog lot={self.lot_id} #{self.sequence} "
            f"{self.action} {self.previous_quantity} -> {self.new_quantity}>"
        )

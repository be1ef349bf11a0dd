"""
SQLAlchemy adapter for the InventoryLotRepository port.

Every quantity mutation is a single conditional UPDATE whose WHERE clause
carries the precondition, e.g. for a reservation::

    UPDATE inventory_lots
       SET reserved_quantity = reserved_quantity + :n
     WHERE id = :lot_id
       AND on_hand_quantity - reserved_quantity >= :n

A rowcount of 0 means the precondition no longer holds: a concurrent writer
got there first.  On PostgreSQL the second writer blocks on the row lock and
re-evaluates the WHERE clause against the committed row; on SQLite writers
are serialized at the database file.  Either way at most one of two racing
reservations for the last units can succeed.

Each method returns ``(ok, new_quantity)`` where ``new_quantity`` is read
back after the update, under the write lock this transaction now holds.
"""

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select, update

from fulfillment_kernel.db.types import ZERO
from fulfillment_kernel.domain.dtos import LotCandidate
from fulfillment_kernel.domain.lot_selection import AllocationStrategy, choose_lot
from fulfillment_kernel.models.inventory_lot import InventoryLot
from fulfillment_kernel.repositories.base import BaseRepository, translate_persistence_errors


class SqlInventoryLotRepository(BaseRepository[InventoryLot]):
    """Lot reads and atomic conditional quantity updates."""

    model = InventoryLot

    def refresh(self, lot_id: UUID) -> InventoryLot | None:
        """Re-read a lot, overwriting any stale in-session copy."""
        with translate_persistence_errors("refresh_lot"):
            return self.session.execute(
                select(InventoryLot)
                .where(InventoryLot.id == lot_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()

    def list_candidates(self, product_id: UUID, warehouse_id: UUID) -> list[LotCandidate]:
        stmt = (
            select(InventoryLot)
            .where(InventoryLot.warehouse_id == warehouse_id)
            .where(
                or_(
                    InventoryLot.sku_id == product_id,
                    InventoryLot.packaging_material_id == product_id,
                )
            )
            .where(InventoryLot.on_hand_quantity - InventoryLot.reserved_quantity > 0)
            .execution_options(populate_existing=True)
        )
        with translate_persistence_errors("list_lot_candidates"):
            lots = self.session.execute(stmt).scalars().all()
        return [LotCandidate.from_model(lot) for lot in lots]

    def get_available_lot(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        strategy: AllocationStrategy,
        *,
        eligible_statuses: Iterable[str] | None = None,
        today: date | None = None,
        exclude_expired: bool = False,
    ) -> LotCandidate | None:
        """
        The best single lot holding at least ``quantity`` available under
        ``strategy``, or None.  Ranking and filtering are the pure rules in
        ``domain.lot_selection``; this method supplies the candidates.
        """
        return choose_lot(
            self.list_candidates(product_id, warehouse_id),
            quantity,
            strategy,
            eligible_statuses=eligible_statuses,
            today=today,
            exclude_expired=exclude_expired,
        )

    def _conditional_update(self, operation: str, stmt) -> bool:
        with translate_persistence_errors(operation):
            result = self.session.execute(
                stmt.execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    def _read_back(self, lot_id: UUID, attr: str) -> Decimal:
        lot = self.refresh(lot_id)
        if lot is None:
            return ZERO
        if attr == "available":
            return lot.available_quantity
        return lot.on_hand_quantity

    def decrement_lot_quantity(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        """Reserve: available -= quantity, only if available >= quantity."""
        ok = self._conditional_update(
            "reserve_lot_quantity",
            update(InventoryLot)
            .where(InventoryLot.id == lot_id)
            .where(InventoryLot.on_hand_quantity - InventoryLot.reserved_quantity >= quantity)
            .values(reserved_quantity=InventoryLot.reserved_quantity + quantity),
        )
        return ok, self._read_back(lot_id, "available")

    def increment_lot_quantity(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        """Release: available += quantity, only if that much is reserved."""
        ok = self._conditional_update(
            "release_lot_quantity",
            update(InventoryLot)
            .where(InventoryLot.id == lot_id)
            .where(InventoryLot.reserved_quantity >= quantity)
            .values(reserved_quantity=InventoryLot.reserved_quantity - quantity),
        )
        return ok, self._read_back(lot_id, "available")

    def consume_reserved(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        """Fulfill: reserved stock leaves the warehouse (on_hand and reserved both drop)."""
        ok = self._conditional_update(
            "consume_lot_quantity",
            update(InventoryLot)
            .where(InventoryLot.id == lot_id)
            .where(InventoryLot.reserved_quantity >= quantity)
            .where(InventoryLot.on_hand_quantity >= quantity)
            .values(
                on_hand_quantity=InventoryLot.on_hand_quantity - quantity,
                reserved_quantity=InventoryLot.reserved_quantity - quantity,
            ),
        )
        return ok, self._read_back(lot_id, "on_hand")

    def restock(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        """Return previously consumed stock to the lot: on_hand += quantity."""
        ok = self._conditional_update(
            "restock_lot_quantity",
            update(InventoryLot)
            .where(InventoryLot.id == lot_id)
            .values(on_hand_quantity=InventoryLot.on_hand_quantity + quantity),
        )
        return ok, self._read_back(lot_id, "on_hand")

    def adjust_on_hand(self, lot_id: UUID, delta: Decimal) -> tuple[bool, Decimal]:
        """Manual correction: on_hand += delta (signed), only if on_hand stays >= reserved."""
        ok = self._conditional_update(
            "adjust_lot_quantity",
            update(InventoryLot)
            .where(InventoryLot.id == lot_id)
            .where(InventoryLot.on_hand_quantity + delta >= InventoryLot.reserved_quantity)
            .values(on_hand_quantity=InventoryLot.on_hand_quantity + delta),
        )
        return ok, self._read_back(lot_id, "on_hand")

    def set_status(self, lot: InventoryLot, status: str, actor_id: UUID) -> None:
        with translate_persistence_errors("set_lot_status"):
            lot.status = status
            lot.updated_by_id = actor_id
            self.session.flush()

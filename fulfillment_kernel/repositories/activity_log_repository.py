"""SQLAlchemy adapter for the ActivityLogRepository port."""

from uuid import UUID

from sqlalchemy import func, select

from fulfillment_kernel.models.activity_log import InventoryActivityLog
from fulfillment_kernel.repositories.base import BaseRepository, translate_persistence_errors


class SqlActivityLogRepository(BaseRepository[InventoryActivityLog]):
    """Append-only activity log rows.  There is no update or delete method."""

    model = InventoryActivityLog

    def append(self, entry: InventoryActivityLog) -> InventoryActivityLog:
        return self.add(entry)

    def next_sequence(self, lot_id: UUID) -> int:
        """
        Next position in the lot's trail.

        Callers hold the lot's write lock (the conditional quantity UPDATE
        precedes the log write), so concurrent appends cannot read the same
        maximum; uq_activity_lot_sequence backs this up.
        """
        stmt = select(func.coalesce(func.max(InventoryActivityLog.sequence), 0)).where(
            InventoryActivityLog.lot_id == lot_id
        )
        with translate_persistence_errors("next_activity_sequence"):
            return int(self.session.execute(stmt).scalar_one()) + 1

    def list_for_lot(self, lot_id: UUID) -> list[InventoryActivityLog]:
        stmt = (
            select(InventoryActivityLog)
            .where(InventoryActivityLog.lot_id == lot_id)
            .order_by(InventoryActivityLog.sequence)
        )
        with translate_persistence_errors("list_activity_for_lot"):
            return list(self.session.execute(stmt).scalars().all())

    def list_for_order(self, order_id: UUID) -> list[InventoryActivityLog]:
        stmt = (
            select(InventoryActivityLog)
            .where(InventoryActivityLog.order_id == order_id)
            .order_by(InventoryActivityLog.occurred_at, InventoryActivityLog.sequence)
        )
        with translate_persistence_errors("list_activity_for_order"):
            return list(self.session.execute(stmt).scalars().all())

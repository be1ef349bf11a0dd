"""SQLAlchemy adapter for the ShipmentRepository port."""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from fulfillment_kernel.models.shipment import OrderFulfillment, Shipment, ShipmentBatch
from fulfillment_kernel.repositories.base import BaseRepository, translate_persistence_errors


class SqlShipmentRepository(BaseRepository[Shipment]):
    """Shipments, shipment batches and order fulfillment rows."""

    model = Shipment

    def get_for_update(self, shipment_id: UUID) -> Shipment | None:
        stmt = (
            select(Shipment)
            .where(Shipment.id == shipment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        with translate_persistence_errors("get_shipment"):
            return self.session.execute(stmt).scalar_one_or_none()

    def list_for_order(self, order_id: UUID) -> list[Shipment]:
        stmt = (
            select(Shipment)
            .where(Shipment.order_id == order_id)
            .order_by(Shipment.created_at, Shipment.id)
        )
        with translate_persistence_errors("list_shipments"):
            return list(self.session.execute(stmt).scalars().all())

    def add_batch(self, batch: ShipmentBatch) -> ShipmentBatch:
        with translate_persistence_errors("add_shipment_batch"):
            self.session.add(batch)
            self.session.flush()
        return batch

    def list_batches_for_order(self, order_id: UUID) -> list[ShipmentBatch]:
        stmt = (
            select(ShipmentBatch)
            .join(Shipment, Shipment.id == ShipmentBatch.shipment_id)
            .where(Shipment.order_id == order_id)
        )
        with translate_persistence_errors("list_shipment_batches"):
            return list(self.session.execute(stmt).scalars().all())

    def shipped_allocation_ids(self, allocation_ids: Sequence[UUID]) -> set[UUID]:
        """Which of the given allocations are already packed into a shipment."""
        if not allocation_ids:
            return set()
        stmt = select(ShipmentBatch.allocation_id).where(
            ShipmentBatch.allocation_id.in_(list(allocation_ids))
        )
        with translate_persistence_errors("shipped_allocation_ids"):
            return set(self.session.execute(stmt).scalars().all())

    def add_fulfillment(self, fulfillment: OrderFulfillment) -> OrderFulfillment:
        with translate_persistence_errors("add_order_fulfillment"):
            self.session.add(fulfillment)
            self.session.flush()
        return fulfillment

    def list_fulfillments(self, order_id: UUID) -> list[OrderFulfillment]:
        stmt = (
            select(OrderFulfillment)
            .where(OrderFulfillment.order_id == order_id)
            .order_by(OrderFulfillment.created_at, OrderFulfillment.id)
        )
        with translate_persistence_errors("list_order_fulfillments"):
            return list(self.session.execute(stmt).scalars().all())

    def set_status(self, entity: Shipment | OrderFulfillment, status: str, actor_id: UUID) -> None:
        with translate_persistence_errors(f"set_{entity.__tablename__}_status"):
            entity.status = status
            entity.updated_by_id = actor_id
            self.session.flush()

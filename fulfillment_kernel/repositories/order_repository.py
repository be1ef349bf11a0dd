"""SQLAlchemy adapter for the OrderRepository port."""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update

from fulfillment_kernel.domain.dtos import OrderItemSnapshot, OrderSnapshot
from fulfillment_kernel.domain.workflow import state_name
from fulfillment_kernel.models.allocation import (
    LIVE_ALLOCATION_STATUSES,
    InventoryAllocation,
)
from fulfillment_kernel.models.order import Order, OrderItem
from fulfillment_kernel.repositories.base import BaseRepository, translate_persistence_errors


class SqlOrderRepository(BaseRepository[Order]):
    """Order reads and the status compare-and-set."""

    model = Order

    def get_order(self, order_id: UUID, *, for_update: bool = False) -> Order | None:
        """
        Load an order.  ``for_update`` takes a row lock on PostgreSQL; SQLite
        ignores it and serializes at the first write instead.
        """
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update()
        with translate_persistence_errors("get_order"):
            return self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalar_one_or_none()

    def get_item(self, order_item_id: UUID) -> OrderItem | None:
        with translate_persistence_errors("get_order_item"):
            return self.session.get(OrderItem, order_item_id)

    def allocated_by_item(self, order_id: UUID) -> dict[UUID, Decimal]:
        """Sum of live allocation quantities per order item."""
        stmt = (
            select(
                InventoryAllocation.order_item_id,
                func.sum(InventoryAllocation.allocated_quantity),
            )
            .where(InventoryAllocation.order_id == order_id)
            .where(InventoryAllocation.status.in_(LIVE_ALLOCATION_STATUSES))
            .group_by(InventoryAllocation.order_item_id)
        )
        with translate_persistence_errors("allocated_by_item"):
            rows = self.session.execute(stmt).all()
        return {item_id: Decimal(str(total or 0)) for item_id, total in rows}

    def get_order_status_and_items(
        self, order_id: UUID, *, for_update: bool = False
    ) -> OrderSnapshot | None:
        order = self.get_order(order_id, for_update=for_update)
        if order is None:
            return None
        allocated = self.allocated_by_item(order_id)
        items = tuple(
            OrderItemSnapshot(
                order_item_id=item.id,
                product_id=item.product_id,
                quantity_ordered=item.quantity_ordered,
                quantity_allocated=allocated.get(item.id, Decimal("0")),
                status=item.status,
            )
            for item in order.items
        )
        return OrderSnapshot(
            order_id=order.id,
            status=order.status,
            category=order.category,
            items=items,
        )

    def compare_and_set_status(
        self,
        order_id: UUID,
        expected_status: str,
        new_status: str,
        actor_id: UUID,
    ) -> bool:
        """
        ``UPDATE orders SET status = new WHERE id = ? AND status = expected``.

        Returns False when the row was not in ``expected_status``.
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id)
            .where(Order.status == state_name(expected_status))
            .values(status=state_name(new_status), updated_by_id=actor_id)
            .execution_options(synchronize_session=False)
        )
        with translate_persistence_errors("order_status_cas"):
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                return False
            # Refresh any in-session copy
            self.session.get(Order, order_id, populate_existing=True)
        return True

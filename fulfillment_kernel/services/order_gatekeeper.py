"""
OrderGatekeeper -- read-only validation of an allocation request.

Checks, in order, each raising its own typed error:

    1. the order exists                          OrderNotFoundError
    2. the order has items                       OrderHasNoItemsError
    3. quantity > 0                              InvalidQuantityError
    4. the order status is allocatable           OrderNotAllocatableError
    5. the product is on the order               ProductNotOnOrderError
    6. the matching item is allocatable          OrderItemNotAllocatableError
    7. quantity <= ordered - allocated to date   QuantityExceedsRemainingError

No writes happen here.  The remaining quantity is re-checked by the
AllocationWriter after the lot reservation, under the lock.
"""

from decimal import Decimal
from uuid import UUID

from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.domain.dtos import OrderLine
from fulfillment_kernel.domain.policy import AllocationPolicy
from fulfillment_kernel.domain.ports import OrderRepository
from fulfillment_kernel.exceptions import (
    InvalidQuantityError,
    OrderHasNoItemsError,
    OrderItemNotAllocatableError,
    OrderNotAllocatableError,
    OrderNotFoundError,
    ProductNotOnOrderError,
    QuantityExceedsRemainingError,
)
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("services.order_gatekeeper")


class OrderGatekeeper:
    """Validates that an order line can take a new allocation."""

    def __init__(self, order_repository: OrderRepository, policy: AllocationPolicy | None = None):
        self._orders = order_repository
        self._policy = policy or AllocationPolicy()

    def validate_allocation_request(
        self,
        order_id: UUID,
        product_id: UUID,
        quantity: Decimal,
        *,
        lock_order: bool = False,
    ) -> OrderLine:
        snapshot = self._orders.get_order_status_and_items(order_id, for_update=lock_order)
        if snapshot is None:
            raise OrderNotFoundError(str(order_id))
        if not snapshot.items:
            raise OrderHasNoItemsError(str(order_id))

        quantity = to_quantity(quantity)
        if quantity <= ZERO:
            raise InvalidQuantityError(str(quantity))

        allowed = self._policy.allocatable_order_statuses
        if snapshot.status not in allowed:
            logger.info(
                "allocation_rejected_order_status",
                extra={"order_id": str(order_id), "status": snapshot.status},
            )
            raise OrderNotAllocatableError(str(order_id), snapshot.status, list(allowed))

        item = snapshot.item_for_product(product_id)
        if item is None:
            raise ProductNotOnOrderError(str(order_id), str(product_id))
        if item.status not in self._policy.allocatable_item_statuses:
            raise OrderItemNotAllocatableError(str(item.order_item_id), item.status)

        if quantity > item.remaining_quantity:
            raise QuantityExceedsRemainingError(
                str(item.order_item_id),
                str(quantity),
                str(item.quantity_ordered),
                str(item.quantity_allocated),
            )

        return OrderLine(
            order_id=snapshot.order_id,
            order_status=snapshot.status,
            order_item_id=item.order_item_id,
            product_id=item.product_id,
            quantity_ordered=item.quantity_ordered,
            quantity_allocated=item.quantity_allocated,
        )

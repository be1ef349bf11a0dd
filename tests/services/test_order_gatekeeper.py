"""
OrderGatekeeper: each precondition fails with its own typed error, and a
rejected request writes nothing.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from fulfillment_kernel.domain.policy import AllocationPolicy
from fulfillment_kernel.exceptions import (
    InvalidQuantityError,
    OrderHasNoItemsError,
    OrderItemNotAllocatableError,
    OrderNotAllocatableError,
    OrderNotFoundError,
    ProductNotOnOrderError,
    QuantityExceedsRemainingError,
)
from fulfillment_kernel.models.activity_log import InventoryActivityLog
from fulfillment_kernel.models.allocation import InventoryAllocation
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.repositories.order_repository import SqlOrderRepository
from fulfillment_kernel.services.order_gatekeeper import OrderGatekeeper


@pytest.fixture
def gatekeeper(session):
    return OrderGatekeeper(SqlOrderRepository(session), AllocationPolicy())


class TestGatekeeperAccepts:
    def test_returns_order_line(self, gatekeeper, create_order):
        product_id = uuid4()
        order = create_order([(product_id, 10)])

        line = gatekeeper.validate_allocation_request(order.id, product_id, Decimal("4"))

        assert line.order_id == order.id
        assert line.product_id == product_id
        assert line.quantity_ordered == Decimal("10")
        assert line.quantity_allocated == Decimal("0")
        assert line.remaining_quantity == Decimal("10")

    def test_packaging_material_item(self, gatekeeper, create_order):
        material_id = uuid4()
        order = create_order([(material_id, 3)], product_kind="packaging_material")

        line = gatekeeper.validate_allocation_request(order.id, material_id, Decimal("3"))

        assert line.product_id == material_id


class TestGatekeeperRejects:
    @pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
    def test_non_positive_quantity(self, gatekeeper, create_order, quantity):
        product_id = uuid4()
        order = create_order([(product_id, 10)])

        with pytest.raises(InvalidQuantityError):
            gatekeeper.validate_allocation_request(order.id, product_id, quantity)

    def test_unknown_order(self, gatekeeper, db_engine):
        with pytest.raises(OrderNotFoundError):
            gatekeeper.validate_allocation_request(uuid4(), uuid4(), Decimal("1"))

    def test_unknown_order_reported_before_bad_quantity(self, gatekeeper, db_engine):
        with pytest.raises(OrderNotFoundError):
            gatekeeper.validate_allocation_request(uuid4(), uuid4(), Decimal("0"))

    def test_empty_order_reported_before_bad_quantity(self, gatekeeper, create_order):
        order = create_order([])

        with pytest.raises(OrderHasNoItemsError):
            gatekeeper.validate_allocation_request(order.id, uuid4(), Decimal("-3"))

    def test_quantity_finer_than_stored_precision(self, gatekeeper, create_order):
        product_id = uuid4()
        order = create_order([(product_id, 10)])

        with pytest.raises(InvalidQuantityError):
            gatekeeper.validate_allocation_request(order.id, product_id, Decimal("1.0000000001"))

    def test_order_without_items(self, gatekeeper, create_order):
        order = create_order([])

        with pytest.raises(OrderHasNoItemsError):
            gatekeeper.validate_allocation_request(order.id, uuid4(), Decimal("1"))

    @pytest.mark.parametrize("status", ["pending", "allocated", "fulfilled", "shipped", "cancelled"])
    def test_order_status_not_allocatable(self, gatekeeper, create_order, status):
        product_id = uuid4()
        order = create_order([(product_id, 10)], status=status)

        with pytest.raises(OrderNotAllocatableError) as exc_info:
            gatekeeper.validate_allocation_request(order.id, product_id, Decimal("1"))
        assert exc_info.value.status == status

    def test_product_not_on_order(self, gatekeeper, create_order):
        order = create_order([(uuid4(), 10)])

        with pytest.raises(ProductNotOnOrderError):
            gatekeeper.validate_allocation_request(order.id, uuid4(), Decimal("1"))

    def test_item_not_allocatable(self, gatekeeper, create_order):
        product_id = uuid4()
        order = create_order([(product_id, 10)], item_status="pending")

        with pytest.raises(OrderItemNotAllocatableError):
            gatekeeper.validate_allocation_request(order.id, product_id, Decimal("1"))

    def test_quantity_exceeds_remaining(self, gatekeeper, create_order):
        product_id = uuid4()
        order = create_order([(product_id, 10)])

        with pytest.raises(QuantityExceedsRemainingError):
            gatekeeper.validate_allocation_request(order.id, product_id, Decimal("11"))


class TestPendingOrderHasNoSideEffects:
    """A pending order is rejected through the public entry point with nothing written."""

    def test_pending_rejected_without_writes(
        self, session, allocation_service, create_order, receive_lot, warehouse_id, test_actor_id
    ):
        product_id = uuid4()
        lot = receive_lot(product_id, 20)
        order = create_order([(product_id, 5)], status="pending")
        log_count_before = session.scalar(select(func.count()).select_from(InventoryActivityLog))

        result = allocation_service.allocate_inventory(
            order.id, product_id, Decimal("5"), warehouse_id, "FEFO", test_actor_id
        )

        assert result.status.value == "validation_failed"
        assert result.error_code == "ORDER_NOT_ALLOCATABLE"
        assert not result.is_retryable
        session.refresh(lot)
        assert lot.reserved_quantity == Decimal("0")
        assert session.scalar(select(func.count()).select_from(InventoryAllocation)) == 0
        assert (
            session.scalar(select(func.count()).select_from(InventoryActivityLog))
            == log_count_before
        )
        assert session.get(Order, order.id).status == "pending"

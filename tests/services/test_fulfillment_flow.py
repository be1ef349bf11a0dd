"""
Fulfillment lifecycle through AllocationService: shipment creation, the
pick/pack/ship sequence, tracking, dispatch and cancellation.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from fulfillment_kernel.domain.policy import FulfillmentPolicy
from fulfillment_kernel.models.allocation import InventoryAllocation
from fulfillment_kernel.models.order import Order
from fulfillment_kernel.models.shipment import OrderFulfillment, Shipment
from fulfillment_kernel.selectors.allocation_selector import AllocationSelector
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.allocation_service import AllocationService, AllocationStatusCode


@pytest.fixture
def allocated_order(allocation_service, create_order, receive_lot, warehouse_id, test_actor_id):
    """An order for 5 units, fully allocated from a 20-unit lot."""
    product_id = uuid4()
    lot = receive_lot(product_id, 20)
    order = create_order([(product_id, 5)])
    result = allocation_service.allocate_inventory(
        order.id, product_id, Decimal("5"), warehouse_id, "FEFO", test_actor_id
    )
    assert result.order_status == "allocated"
    return order, lot, result.allocation


@pytest.fixture
def packed_order(allocation_service, allocated_order, test_actor_id):
    """The allocated order with one shipment, picked and packed, order FULFILLED."""
    order, lot, allocation = allocated_order
    shipment = allocation_service.create_shipment(order.id, test_actor_id).shipment
    allocation_service.advance_fulfillment(order.id, None, None, "picking", test_actor_id)
    result = allocation_service.advance_fulfillment(
        order.id, "fulfilled", "packed", "packed", test_actor_id
    )
    assert result.is_success, result.error
    return order, lot, allocation, shipment


class TestCreateShipment:
    def test_packs_every_reserved_allocation(
        self, session, allocation_service, allocated_order, warehouse_id, test_actor_id
    ):
        order, _, allocation = allocated_order

        result = allocation_service.create_shipment(order.id, test_actor_id, notes="dock 4")

        assert result.is_success
        shipment = result.shipment
        assert shipment.status == "pending"
        assert shipment.warehouse_id == warehouse_id
        assert shipment.allocation_ids == (allocation.id,)
        fulfillments = session.scalars(
            select(OrderFulfillment).where(OrderFulfillment.order_id == order.id)
        ).all()
        assert len(fulfillments) == 1
        assert fulfillments[0].quantity_fulfilled == Decimal("5")
        assert fulfillments[0].status == "pending"

    def test_nothing_left_to_pack(self, allocation_service, allocated_order, test_actor_id):
        order, _, _ = allocated_order
        allocation_service.create_shipment(order.id, test_actor_id)

        again = allocation_service.create_shipment(order.id, test_actor_id)

        assert again.status == AllocationStatusCode.NOT_FOUND
        assert again.error_code == "ALLOCATION_NOT_FOUND"

    def test_explicit_allocation_already_packed(
        self, allocation_service, allocated_order, test_actor_id
    ):
        order, _, allocation = allocated_order
        allocation_service.create_shipment(order.id, test_actor_id, allocation_ids=[allocation.id])

        again = allocation_service.create_shipment(
            order.id, test_actor_id, allocation_ids=[allocation.id]
        )

        assert again.error_code == "FULFILLMENT_PRECONDITION_FAILED"

    def test_unknown_allocation_id(self, allocation_service, allocated_order, test_actor_id):
        order, _, _ = allocated_order

        result = allocation_service.create_shipment(
            order.id, test_actor_id, allocation_ids=[uuid4()]
        )

        assert result.error_code == "ALLOCATION_NOT_FOUND"

    def test_order_must_be_allocated(self, allocation_service, create_order, test_actor_id):
        order = create_order([(uuid4(), 5)])

        result = allocation_service.create_shipment(order.id, test_actor_id)

        assert result.status == AllocationStatusCode.BUSINESS_RULE_VIOLATION
        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"

    def test_single_warehouse_per_shipment(
        self, allocation_service, create_order, receive_lot, warehouse_id, test_actor_id
    ):
        product_a, product_b = uuid4(), uuid4()
        other_warehouse = uuid4()
        receive_lot(product_a, 10)
        receive_lot(product_b, 10, warehouse=other_warehouse)
        order = create_order([(product_a, 2), (product_b, 2)])
        first = allocation_service.allocate_inventory(
            order.id, product_a, Decimal("2"), warehouse_id, "FEFO", test_actor_id
        )
        second = allocation_service.allocate_inventory(
            order.id, product_b, Decimal("2"), other_warehouse, "FEFO", test_actor_id
        )
        assert second.order_status == "allocated"

        mixed = allocation_service.create_shipment(order.id, test_actor_id)
        split_a = allocation_service.create_shipment(
            order.id, test_actor_id, allocation_ids=[first.allocation.id]
        )
        split_b = allocation_service.create_shipment(
            order.id, test_actor_id, allocation_ids=[second.allocation.id]
        )

        assert mixed.status == AllocationStatusCode.VALIDATION_FAILED
        assert mixed.error_code == "MULTIPLE_WAREHOUSE_SHIPMENT"
        assert split_a.shipment.warehouse_id == warehouse_id
        assert split_b.shipment.warehouse_id == other_warehouse


class TestStatusSequence:
    def test_full_happy_path(
        self, session, allocation_service, packed_order, test_actor_id
    ):
        order, lot, allocation, shipment = packed_order

        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("15")
        assert lot.reserved_quantity == Decimal("0")
        assert session.get(InventoryAllocation, allocation.id).status == "fulfilled"

        tracked = allocation_service.attach_tracking(shipment.id, "1Z999AA10123456784", "UPS", test_actor_id)
        assert tracked.is_success
        assert tracked.order_id == order.id
        assert tracked.shipment.tracking_number == "1Z999AA10123456784"

        shipped = allocation_service.advance_fulfillment(
            order.id, "shipped", "shipped", "shipped", test_actor_id
        )

        assert shipped.is_success
        assert shipped.order_status == "shipped"
        assert shipped.shipment.status == "shipped"
        assert shipped.shipment.shipped_at is not None
        assert session.get(InventoryAllocation, allocation.id).status == "shipped"
        assert ActivityLogWriter(session).verify_lot_trail(lot.id) == 3

    def test_fulfilled_reports_consumed_allocations(
        self, allocation_service, allocated_order, test_actor_id
    ):
        order, _, allocation = allocated_order
        allocation_service.create_shipment(order.id, test_actor_id)
        allocation_service.advance_fulfillment(order.id, None, None, "picking", test_actor_id)

        result = allocation_service.advance_fulfillment(
            order.id, "fulfilled", "packed", "packed", test_actor_id
        )

        assert result.consumed_allocation_ids == (allocation.id,)

    def test_exhausted_lot_goes_out_of_stock(
        self, session, allocation_service, create_order, receive_lot, warehouse_id, test_actor_id
    ):
        product_id = uuid4()
        lot = receive_lot(product_id, 5)
        order = create_order([(product_id, 5)])
        allocation_service.allocate_inventory(
            order.id, product_id, Decimal("5"), warehouse_id, "FEFO", test_actor_id
        )
        allocation_service.create_shipment(order.id, test_actor_id)
        allocation_service.advance_fulfillment(order.id, None, None, "picking", test_actor_id)
        allocation_service.advance_fulfillment(order.id, "fulfilled", "packed", "packed", test_actor_id)

        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("0")
        assert lot.status == "out_of_stock"

    def test_cannot_skip_picking(self, allocation_service, allocated_order, test_actor_id):
        order, _, _ = allocated_order
        allocation_service.create_shipment(order.id, test_actor_id)

        result = allocation_service.advance_fulfillment(order.id, None, None, "packed", test_actor_id)

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_cannot_fulfill_before_packing(self, session, allocation_service, allocated_order, test_actor_id):
        order, lot, _ = allocated_order

        result = allocation_service.advance_fulfillment(order.id, "fulfilled", None, None, test_actor_id)

        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"
        session.refresh(lot)
        assert lot.reserved_quantity == Decimal("5")

    def test_cannot_ship_straight_from_allocated(self, allocation_service, allocated_order, test_actor_id):
        order, _, _ = allocated_order

        result = allocation_service.advance_fulfillment(order.id, "shipped", None, None, test_actor_id)

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_shipping_requires_tracking(self, session, allocation_service, packed_order, test_actor_id):
        order, _, _, shipment = packed_order

        result = allocation_service.advance_fulfillment(
            order.id, "shipped", "shipped", "shipped", test_actor_id
        )

        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"
        assert session.get(Order, order.id).status == "fulfilled"
        assert session.get(Shipment, shipment.id).status == "packed"

    def test_tracking_optional_when_policy_allows(
        self, session, deterministic_clock, packed_order, test_actor_id
    ):
        order, _, _, _ = packed_order
        service = AllocationService(
            session,
            fulfillment_policy=FulfillmentPolicy(require_tracking_for_shipment=False),
            clock=deterministic_clock,
        )

        result = service.advance_fulfillment(order.id, "shipped", "shipped", "shipped", test_actor_id)

        assert result.is_success
        assert result.order_status == "shipped"

    def test_shipment_cannot_ship_before_order_fulfilled(
        self, session, allocation_service, allocated_order, test_actor_id
    ):
        order, lot, allocation = allocated_order
        shipment = allocation_service.create_shipment(order.id, test_actor_id).shipment
        allocation_service.advance_fulfillment(order.id, None, "packed", None, test_actor_id)
        allocation_service.attach_tracking(shipment.id, "TRK-1", "DHL", test_actor_id)

        result = allocation_service.advance_fulfillment(order.id, None, "shipped", None, test_actor_id)

        assert result.status == AllocationStatusCode.BUSINESS_RULE_VIOLATION
        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"
        assert session.get(Shipment, shipment.id).status == "packed"
        assert session.get(Shipment, shipment.id).shipped_at is None
        assert session.get(InventoryAllocation, allocation.id).status == "allocated"
        session.refresh(lot)
        assert lot.reserved_quantity == Decimal("5")
        assert lot.on_hand_quantity == Decimal("20")

    def test_rejected_dispatch_leaves_order_fulfillable(
        self, allocation_service, allocated_order, test_actor_id
    ):
        order, _, _ = allocated_order
        shipment = allocation_service.create_shipment(order.id, test_actor_id).shipment
        allocation_service.attach_tracking(shipment.id, "TRK-2", "DHL", test_actor_id)
        allocation_service.advance_fulfillment(order.id, None, None, "picking", test_actor_id)
        allocation_service.advance_fulfillment(order.id, None, "packed", "packed", test_actor_id)
        early = allocation_service.advance_fulfillment(order.id, None, None, "shipped", test_actor_id)
        assert early.error_code == "FULFILLMENT_PRECONDITION_FAILED"

        fulfilled = allocation_service.advance_fulfillment(
            order.id, "fulfilled", "packed", "packed", test_actor_id
        )
        shipped = allocation_service.advance_fulfillment(
            order.id, "shipped", "shipped", "shipped", test_actor_id
        )

        assert fulfilled.order_status == "fulfilled"
        assert shipped.order_status == "shipped"

    def test_shipments_dispatch_one_at_a_time_after_fulfillment(
        self, session, allocation_service, packed_order, test_actor_id
    ):
        order, _, allocation, shipment = packed_order
        allocation_service.attach_tracking(shipment.id, "TRK-3", "UPS", test_actor_id)

        dispatched = allocation_service.advance_fulfillment(
            order.id, None, "shipped", None, test_actor_id, shipment_id=shipment.id
        )
        shipped = allocation_service.advance_fulfillment(
            order.id, "shipped", None, "shipped", test_actor_id
        )

        assert dispatched.is_success
        assert dispatched.order_status == "fulfilled"
        assert dispatched.consumed_allocation_ids == ()
        assert session.get(InventoryAllocation, allocation.id).status == "shipped"
        assert shipped.order_status == "shipped"


class TestAllocationPhaseTargets:
    """Coverage decides ALLOCATING / PARTIAL / ALLOCATED; advance_fulfillment cannot."""

    def test_under_covered_order_cannot_be_forced_allocated(
        self, session, allocation_service, create_order, receive_lot, warehouse_id, test_actor_id
    ):
        product_a, product_b = uuid4(), uuid4()
        receive_lot(product_a, 10)
        order = create_order([(product_a, 2), (product_b, 3)])
        first = allocation_service.allocate_inventory(
            order.id, product_a, Decimal("2"), warehouse_id, "FEFO", test_actor_id
        )
        assert first.order_status == "allocating"

        result = allocation_service.advance_fulfillment(order.id, "allocated", None, None, test_actor_id)

        assert result.status == AllocationStatusCode.BUSINESS_RULE_VIOLATION
        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"
        assert session.get(Order, order.id).status == "allocating"

    def test_confirmed_order_without_allocation_cannot_enter_allocating(
        self, session, allocation_service, create_order, test_actor_id
    ):
        order = create_order([(uuid4(), 4)])

        result = allocation_service.advance_fulfillment(order.id, "allocating", None, None, test_actor_id)

        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"
        assert session.get(Order, order.id).status == "confirmed"

    def test_partial_target_rejected(
        self, session, allocation_service, create_order, receive_lot, warehouse_id, test_actor_id
    ):
        product_a, product_b = uuid4(), uuid4()
        receive_lot(product_a, 10)
        order = create_order([(product_a, 2), (product_b, 3)])
        allocation_service.allocate_inventory(
            order.id, product_a, Decimal("2"), warehouse_id, "FEFO", test_actor_id
        )

        forced = allocation_service.advance_fulfillment(order.id, "partial", None, None, test_actor_id)
        settled = allocation_service.settle_allocation(order.id, test_actor_id)

        assert forced.error_code == "FULFILLMENT_PRECONDITION_FAILED"
        assert settled.order_status == "partial"


class TestAttachTracking:
    def test_unknown_shipment(self, allocation_service, db_engine, test_actor_id):
        result = allocation_service.attach_tracking(uuid4(), "X", None, test_actor_id)

        assert result.error_code == "SHIPMENT_NOT_FOUND"
        assert result.order_id is None

    def test_blank_tracking_rejected(self, allocation_service, allocated_order, test_actor_id):
        order, _, _ = allocated_order
        shipment = allocation_service.create_shipment(order.id, test_actor_id).shipment

        result = allocation_service.attach_tracking(shipment.id, "   ", "UPS", test_actor_id)

        assert result.error_code == "FULFILLMENT_PRECONDITION_FAILED"


class TestCancellation:
    def test_cancel_releases_reservations(
        self, session, allocation_service, allocated_order, test_actor_id
    ):
        order, lot, allocation = allocated_order

        result = allocation_service.cancel_order(order.id, test_actor_id, reason="customer request")

        assert result.is_success
        assert result.order_status == "cancelled"
        assert result.released_allocation_ids == (allocation.id,)
        session.refresh(lot)
        assert lot.available_quantity == Decimal("20")
        assert session.get(InventoryAllocation, allocation.id).status == "released"
        summary = AllocationSelector(session).get_order_allocation_summary(order.id)
        assert summary.allocations == ()
        assert ActivityLogWriter(session).verify_lot_trail(lot.id) == 3

    def test_cancel_after_fulfilment_restocks(
        self, session, allocation_service, packed_order, test_actor_id
    ):
        order, lot, allocation, shipment = packed_order

        result = allocation_service.cancel_order(order.id, test_actor_id)

        assert result.is_success
        assert result.shipment.id == shipment.id
        assert result.shipment.status == "cancelled"
        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("20")
        assert lot.reserved_quantity == Decimal("0")
        trail = AllocationSelector(session).get_lot_activity_trail(lot.id)
        assert [e.action for e in trail] == ["receive", "reserve", "fulfill", "restock"]
        assert ActivityLogWriter(session).verify_lot_trail(lot.id) == 4

    def test_cancel_without_restock(self, session, deterministic_clock, packed_order, test_actor_id):
        order, lot, _, _ = packed_order
        service = AllocationService(
            session,
            fulfillment_policy=FulfillmentPolicy(restock_on_cancel=False),
            clock=deterministic_clock,
        )

        result = service.cancel_order(order.id, test_actor_id)

        assert result.is_success
        assert result.released_allocation_ids == ()
        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("15")

    def test_cancel_through_advance_fulfillment(self, allocation_service, allocated_order, test_actor_id):
        order, _, _ = allocated_order

        result = allocation_service.advance_fulfillment(order.id, "cancelled", None, None, test_actor_id)

        assert result.order_status == "cancelled"

    def test_shipped_order_cannot_be_cancelled(
        self, allocation_service, packed_order, test_actor_id
    ):
        order, _, _, shipment = packed_order
        allocation_service.attach_tracking(shipment.id, "TRK-9", "UPS", test_actor_id)
        allocation_service.advance_fulfillment(order.id, "shipped", "shipped", "shipped", test_actor_id)

        result = allocation_service.cancel_order(order.id, test_actor_id)

        assert result.error_code == "INVALID_STATUS_TRANSITION"

    def test_pending_order_can_be_cancelled(self, allocation_service, create_order, test_actor_id):
        order = create_order([(uuid4(), 1)], status="pending")

        result = allocation_service.cancel_order(order.id, test_actor_id)

        assert result.order_status == "cancelled"
        assert result.released_allocation_ids == ()

    def test_unknown_order(self, allocation_service, db_engine, test_actor_id):
        result = allocation_service.cancel_order(uuid4(), test_actor_id)

        assert result.status == AllocationStatusCode.NOT_FOUND

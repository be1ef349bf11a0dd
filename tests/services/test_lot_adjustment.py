"""
Manual lot corrections through AllocationService.adjust_lot: on-hand moves
by a signed amount, reservations stay covered, and every correction is an
ADJUST entry the trail replays.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_kernel.exceptions import InvalidAdjustmentTypeError
from fulfillment_kernel.selectors.allocation_selector import AllocationSelector
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.allocation_service import AllocationStatusCode
from fulfillment_kernel.services.lot_adjustment_service import parse_adjustment_type


@pytest.fixture
def reserved_lot(allocation_service, create_order, receive_lot, warehouse_id, test_actor_id):
    """A 10-unit lot with 4 units reserved for an order."""
    product_id = uuid4()
    lot = receive_lot(product_id, 10)
    order = create_order([(product_id, 4)])
    result = allocation_service.allocate_inventory(
        order.id, product_id, Decimal("4"), warehouse_id, "FEFO", test_actor_id
    )
    assert result.is_success
    return lot


class TestAdjustLot:
    def test_damaged_stock_written_off(self, session, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 10)

        result = allocation_service.adjust_lot(
            lot.id, Decimal("-3"), "damaged", test_actor_id, comment="crushed pallet"
        )

        assert result.is_success
        assert result.on_hand_quantity == Decimal("7")
        assert result.entry.action == "adjust"
        assert result.entry.quantity_basis == "on_hand"
        assert result.entry.previous_quantity == Decimal("10")
        assert result.entry.quantity_change == Decimal("-3")
        assert result.entry.comment == "crushed pallet"
        assert result.entry.metadata["adjustment_type"] == "damaged"
        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("7")
        assert lot.reserved_quantity == Decimal("0")

    def test_found_stock_added(self, session, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 10)

        result = allocation_service.adjust_lot(lot.id, Decimal("1.5"), "FOUND", test_actor_id)

        assert result.is_success
        assert result.entry.quantity_change == Decimal("1.5")
        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("11.5")

    def test_count_correction_goes_both_ways(self, session, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 10)

        down = allocation_service.adjust_lot(lot.id, Decimal("-2"), "count_correction", test_actor_id)
        up = allocation_service.adjust_lot(lot.id, Decimal("5"), "count_correction", test_actor_id)

        assert down.is_success
        assert up.is_success
        assert up.on_hand_quantity == Decimal("13")

    def test_trail_replays_with_adjustments(self, session, allocation_service, reserved_lot, test_actor_id):
        allocation_service.adjust_lot(reserved_lot.id, Decimal("-2"), "lost", test_actor_id)
        allocation_service.adjust_lot(reserved_lot.id, Decimal("3"), "found", test_actor_id)

        trail = AllocationSelector(session).get_lot_activity_trail(reserved_lot.id)

        assert [e.action for e in trail] == ["receive", "reserve", "adjust", "adjust"]
        assert ActivityLogWriter(session).verify_lot_trail(reserved_lot.id) == 4
        session.refresh(reserved_lot)
        assert reserved_lot.on_hand_quantity == Decimal("11")
        assert reserved_lot.reserved_quantity == Decimal("4")

    def test_decrease_down_to_reserved_allowed(self, session, allocation_service, reserved_lot, test_actor_id):
        result = allocation_service.adjust_lot(reserved_lot.id, Decimal("-6"), "lost", test_actor_id)

        assert result.is_success
        session.refresh(reserved_lot)
        assert reserved_lot.available_quantity == Decimal("0")
        assert reserved_lot.status == "in_stock"


class TestAdjustLotRejects:
    def test_decrease_below_reserved(self, session, allocation_service, reserved_lot, test_actor_id):
        result = allocation_service.adjust_lot(reserved_lot.id, Decimal("-7"), "damaged", test_actor_id)

        assert result.status == AllocationStatusCode.BUSINESS_RULE_VIOLATION
        assert result.error_code == "LOT_ADJUSTMENT_REJECTED"
        assert not result.is_retryable
        session.refresh(reserved_lot)
        assert reserved_lot.on_hand_quantity == Decimal("10")
        assert ActivityLogWriter(session).verify_lot_trail(reserved_lot.id) == 2

    @pytest.mark.parametrize(
        "adjustment, adjustment_type",
        [("2", "damaged"), ("2", "lost"), ("-2", "found")],
    )
    def test_direction_not_allowed_for_type(
        self, allocation_service, receive_lot, test_actor_id, adjustment, adjustment_type
    ):
        lot = receive_lot(uuid4(), 10)

        result = allocation_service.adjust_lot(lot.id, Decimal(adjustment), adjustment_type, test_actor_id)

        assert result.status == AllocationStatusCode.VALIDATION_FAILED
        assert result.error_code == "INVALID_ADJUSTMENT_TYPE"

    def test_unknown_type(self, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 10)

        result = allocation_service.adjust_lot(lot.id, Decimal("-1"), "stolen", test_actor_id)

        assert result.error_code == "INVALID_ADJUSTMENT_TYPE"

    def test_zero_adjustment(self, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 10)

        result = allocation_service.adjust_lot(lot.id, Decimal("0"), "count_correction", test_actor_id)

        assert result.status == AllocationStatusCode.VALIDATION_FAILED
        assert result.error_code == "INVALID_QUANTITY"

    def test_unknown_lot(self, allocation_service, db_engine, test_actor_id):
        result = allocation_service.adjust_lot(uuid4(), Decimal("-1"), "lost", test_actor_id)

        assert result.status == AllocationStatusCode.NOT_FOUND
        assert result.error_code == "LOT_NOT_FOUND"


class TestLotStatusUpkeep:
    def test_writing_off_everything_marks_out_of_stock(
        self, session, allocation_service, receive_lot, test_actor_id
    ):
        lot = receive_lot(uuid4(), 5)

        allocation_service.adjust_lot(lot.id, Decimal("-5"), "damaged", test_actor_id)

        session.refresh(lot)
        assert lot.on_hand_quantity == Decimal("0")
        assert lot.status == "out_of_stock"

    def test_found_stock_restores_in_stock(self, session, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 5)
        allocation_service.adjust_lot(lot.id, Decimal("-5"), "lost", test_actor_id)

        allocation_service.adjust_lot(lot.id, Decimal("2"), "found", test_actor_id)

        session.refresh(lot)
        assert lot.status == "in_stock"
        assert ActivityLogWriter(session).verify_lot_trail(lot.id) == 3

    def test_quarantined_lot_keeps_status(self, session, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 5, status="quarantined")

        allocation_service.adjust_lot(lot.id, Decimal("-5"), "damaged", test_actor_id)

        session.refresh(lot)
        assert lot.status == "quarantined"


class TestAdjustmentLogging:
    def test_adjustment_logged_with_lot(self, captured_logs, allocation_service, receive_lot, test_actor_id):
        lot = receive_lot(uuid4(), 10)

        allocation_service.adjust_lot(lot.id, Decimal("-1"), "damaged", test_actor_id)

        adjusted = next(r for r in captured_logs() if r["message"] == "lot_adjusted")
        assert adjusted["lot_id"] == str(lot.id)
        assert adjusted["actor_id"] == str(test_actor_id)
        assert adjusted["adjustment_type"] == "damaged"
        assert Decimal(adjusted["new_on_hand"]) == Decimal("9")


class TestParseAdjustmentType:
    def test_case_insensitive(self):
        assert parse_adjustment_type(" Count_Correction ").value == "count_correction"

    def test_unknown(self):
        with pytest.raises(InvalidAdjustmentTypeError):
            parse_adjustment_type("misplaced")

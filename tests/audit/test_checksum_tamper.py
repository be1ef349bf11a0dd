"""
Tampering detection: rows edited behind the ORM's back no longer verify.

Raw SQL bypasses the immutability listeners, so these tests simulate a
direct database edit and check the checksum and replay catch it.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select, text

from fulfillment_kernel.exceptions import ActivityLogIntegrityError
from fulfillment_kernel.models.activity_log import InventoryActivityLog
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter


def _reload_entries(session, lot_id):
    session.expire_all()
    return session.scalars(
        select(InventoryActivityLog)
        .where(InventoryActivityLog.lot_id == lot_id)
        .order_by(InventoryActivityLog.sequence)
    ).all()


@pytest.fixture
def reserved_lot(allocation_service, create_order, receive_lot, warehouse_id, test_actor_id):
    product_id = uuid4()
    lot = receive_lot(product_id, 10)
    order = create_order([(product_id, 4)])
    allocation_service.allocate_inventory(
        order.id, product_id, Decimal("4"), warehouse_id, "FEFO", test_actor_id
    )
    return lot


class TestChecksumTamper:
    def test_untouched_trail_verifies(self, session, reserved_lot):
        assert ActivityLogWriter(session).verify_lot_trail(reserved_lot.id) == 2

    def test_edited_quantities_fail_checksum(self, session, reserved_lot):
        session.execute(
            text(
                "UPDATE inventory_activity_logs "
                "SET previous_quantity = 12, new_quantity = 8 "
                "WHERE lot_id = :lot_id AND sequence = 2"
            ),
            {"lot_id": str(reserved_lot.id)},
        )
        session.commit()
        entry = _reload_entries(session, reserved_lot.id)[1]

        with pytest.raises(ActivityLogIntegrityError, match="checksum"):
            ActivityLogWriter(session).verify_entry(entry)

    def test_edited_lot_row_fails_replay(self, session, reserved_lot):
        session.execute(
            text("UPDATE inventory_lots SET on_hand_quantity = 50 WHERE lot_number = :n"),
            {"n": reserved_lot.lot_number},
        )
        session.commit()
        session.expire_all()

        with pytest.raises(ActivityLogIntegrityError, match="replays"):
            ActivityLogWriter(session).verify_lot_trail(reserved_lot.id)

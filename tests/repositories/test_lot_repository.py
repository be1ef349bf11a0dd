"""SqlInventoryLotRepository: single-lot lookup and on-hand corrections."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from fulfillment_kernel.domain.lot_selection import AllocationStrategy
from fulfillment_kernel.repositories.lot_repository import SqlInventoryLotRepository


class TestGetAvailableLot:
    def test_fefo_prefers_earliest_expiry(self, session, receive_lot, warehouse_id):
        product_id = uuid4()
        receive_lot(product_id, 10, expiry_date=date(2024, 9, 1))
        soonest = receive_lot(product_id, 10, expiry_date=date(2024, 7, 1))
        repo = SqlInventoryLotRepository(session)

        lot = repo.get_available_lot(product_id, warehouse_id, Decimal("4"), AllocationStrategy.FEFO)

        assert lot.lot_id == soonest.id
        assert lot.available_quantity == Decimal("10")

    def test_fifo_prefers_oldest_inbound(self, session, receive_lot, warehouse_id):
        product_id = uuid4()
        receive_lot(product_id, 10, inbound_date=date(2024, 5, 20))
        oldest = receive_lot(product_id, 10, inbound_date=date(2024, 5, 1))
        repo = SqlInventoryLotRepository(session)

        lot = repo.get_available_lot(product_id, warehouse_id, Decimal("4"), AllocationStrategy.FIFO)

        assert lot.lot_id == oldest.id

    def test_skips_lots_too_small(self, session, receive_lot, warehouse_id):
        product_id = uuid4()
        receive_lot(product_id, 2, expiry_date=date(2024, 7, 1))
        larger = receive_lot(product_id, 6, expiry_date=date(2024, 9, 1))
        repo = SqlInventoryLotRepository(session)

        lot = repo.get_available_lot(product_id, warehouse_id, Decimal("5"), AllocationStrategy.FEFO)

        assert lot.lot_id == larger.id

    def test_none_when_no_single_lot_suffices(self, session, receive_lot, warehouse_id):
        product_id = uuid4()
        receive_lot(product_id, 3)
        receive_lot(product_id, 3)
        repo = SqlInventoryLotRepository(session)

        assert repo.get_available_lot(product_id, warehouse_id, Decimal("5"), AllocationStrategy.FEFO) is None

    def test_status_filter(self, session, receive_lot, warehouse_id):
        product_id = uuid4()
        receive_lot(product_id, 10, expiry_date=date(2024, 7, 1), status="quarantined")
        released = receive_lot(product_id, 10, expiry_date=date(2024, 9, 1))
        repo = SqlInventoryLotRepository(session)

        lot = repo.get_available_lot(
            product_id,
            warehouse_id,
            Decimal("1"),
            AllocationStrategy.FEFO,
            eligible_statuses=["in_stock"],
        )

        assert lot.lot_id == released.id

    def test_expired_lot_excluded(self, session, receive_lot, warehouse_id):
        product_id = uuid4()
        receive_lot(product_id, 10, expiry_date=date(2024, 5, 1))
        fresh = receive_lot(product_id, 10, expiry_date=date(2024, 9, 1))
        repo = SqlInventoryLotRepository(session)

        lot = repo.get_available_lot(
            product_id,
            warehouse_id,
            Decimal("1"),
            AllocationStrategy.FEFO,
            today=date(2024, 6, 1),
            exclude_expired=True,
        )

        assert lot.lot_id == fresh.id


class TestAdjustOnHand:
    def test_increase(self, session, receive_lot):
        stock = receive_lot(uuid4(), 10)
        repo = SqlInventoryLotRepository(session)

        ok, on_hand = repo.adjust_on_hand(stock.id, Decimal("2.5"))

        assert ok is True
        assert on_hand == Decimal("12.5")

    def test_decrease_down_to_reserved(self, session, receive_lot):
        stock = receive_lot(uuid4(), 10)
        repo = SqlInventoryLotRepository(session)
        repo.decrement_lot_quantity(stock.id, Decimal("4"))

        ok, on_hand = repo.adjust_on_hand(stock.id, Decimal("-6"))

        assert ok is True
        assert on_hand == Decimal("4")
        assert repo.refresh(stock.id).available_quantity == Decimal("0")

    def test_decrease_below_reserved_fails(self, session, receive_lot):
        stock = receive_lot(uuid4(), 10)
        repo = SqlInventoryLotRepository(session)
        repo.decrement_lot_quantity(stock.id, Decimal("4"))

        ok, on_hand = repo.adjust_on_hand(stock.id, Decimal("-7"))

        assert ok is False
        assert on_hand == Decimal("10")

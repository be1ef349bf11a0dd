"""
Two allocations racing for the last units of a lot.

Each thread uses its own session.  Both requests pick the lot before either
reserves; exactly one conditional update succeeds, the lot never goes
negative, and the loser gets a retryable CONFLICT result rather than an
exception.
"""

import threading
from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment_kernel.domain.dtos import LotCandidate
from fulfillment_kernel.exceptions import LotQuantityConflictError
from fulfillment_kernel.models.inventory_lot import InventoryLot
from fulfillment_kernel.repositories.order_repository import SqlOrderRepository
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.allocation_service import AllocationService, AllocationStatusCode
from fulfillment_kernel.services.allocation_writer import AllocationWriter
from fulfillment_kernel.services.lot_selector import LotSelector
from fulfillment_kernel.services.order_gatekeeper import OrderGatekeeper

pytestmark = pytest.mark.slow


class TestAllocationRace:
    def test_two_threads_one_lot(
        self,
        monkeypatch,
        session,
        session_factory,
        create_order,
        receive_lot,
        warehouse_id,
        test_actor_id,
        deterministic_clock,
    ):
        product_id = uuid4()
        lot = receive_lot(product_id, 5)
        orders = [create_order([(product_id, 5)]), create_order([(product_id, 5)])]
        barrier = threading.Barrier(len(orders), timeout=30)
        results = {}
        errors = []
        select_lot = LotSelector.select_lot

        def select_then_wait(self, *args, **kwargs):
            # Both requests see the lot with 5 available before either reserves
            candidate = select_lot(self, *args, **kwargs)
            barrier.wait()
            return candidate

        monkeypatch.setattr(LotSelector, "select_lot", select_then_wait)

        def allocate(order_id):
            thread_session = session_factory()
            try:
                service = AllocationService(thread_session, clock=deterministic_clock)
                results[order_id] = service.allocate_inventory(
                    order_id, product_id, Decimal("5"), warehouse_id, "FEFO", test_actor_id
                )
            except Exception as exc:
                errors.append(exc)
            finally:
                thread_session.close()

        threads = [threading.Thread(target=allocate, args=(o.id,)) for o in orders]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        outcomes = [r.status for r in results.values()]
        assert outcomes.count(AllocationStatusCode.SUCCEEDED) == 1
        loser = next(r for r in results.values() if not r.is_success)
        assert loser.status == AllocationStatusCode.CONFLICT
        assert loser.is_retryable
        assert loser.allocations == ()

        session.expire_all()
        refreshed = session.get(InventoryLot, lot.id)
        assert refreshed.reserved_quantity == Decimal("5")
        assert refreshed.available_quantity == Decimal("0")
        assert ActivityLogWriter(session).verify_lot_trail(lot.id) == 2


class TestStaleCandidate:
    """A lot read before another transaction drained it cannot be reserved."""

    def test_stale_read_raises_conflict(
        self, session, session_factory, create_order, receive_lot, test_actor_id, deterministic_clock
    ):
        product_id = uuid4()
        lot = receive_lot(product_id, 5)
        first_order = create_order([(product_id, 5)])
        second_order = create_order([(product_id, 5)])
        stale = LotCandidate.from_model(lot)

        with session_factory() as winner_session:
            line = OrderGatekeeper(SqlOrderRepository(winner_session)).validate_allocation_request(
                first_order.id, product_id, Decimal("5")
            )
            AllocationWriter(winner_session, deterministic_clock).commit_allocation(
                line, stale, Decimal("5"), test_actor_id
            )
            winner_session.commit()

        with session_factory() as loser_session:
            line = OrderGatekeeper(SqlOrderRepository(loser_session)).validate_allocation_request(
                second_order.id, product_id, Decimal("5")
            )
            writer = AllocationWriter(loser_session, deterministic_clock)
            with pytest.raises(LotQuantityConflictError) as exc_info:
                writer.commit_allocation(line, stale, Decimal("5"), test_actor_id)
            loser_session.rollback()

        assert exc_info.value.is_retryable
        session.expire_all()
        assert session.get(InventoryLot, lot.id).reserved_quantity == Decimal("5")

"""AllocationPolicy / FulfillmentPolicy validation."""

import pytest

from fulfillment_kernel.domain.policy import AllocationPolicy, FulfillmentPolicy


class TestAllocationPolicy:
    def test_defaults(self):
        policy = AllocationPolicy()
        assert policy.default_strategy == "FEFO"
        assert policy.allow_lot_splitting is False
        assert "pending" not in policy.allocatable_order_statuses

    def test_pending_never_allocatable(self):
        with pytest.raises(ValueError, match="pending"):
            AllocationPolicy(allocatable_order_statuses=("pending", "confirmed"))

    def test_empty_statuses_rejected(self):
        with pytest.raises(ValueError):
            AllocationPolicy(allocatable_order_statuses=())
        with pytest.raises(ValueError):
            AllocationPolicy(eligible_lot_statuses=())

    def test_bad_strategy_rejected(self):
        with pytest.raises(ValueError, match="default_strategy"):
            AllocationPolicy(default_strategy="LIFO")

    def test_frozen(self):
        policy = AllocationPolicy()
        with pytest.raises(AttributeError):
            policy.allow_lot_splitting = True


class TestFulfillmentPolicy:
    def test_defaults(self):
        policy = FulfillmentPolicy()
        assert policy.require_tracking_for_shipment is True
        assert policy.restock_on_cancel is True

"""
Pure domain layer.

Value objects and decision logic with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

Lot ranking, the lifecycle workflows and the policy objects live here and
are exercised directly by unit tests.
"""

from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.dtos import (
    ActivityEntryRecord,
    AllocationRecord,
    FulfillmentProgress,
    ItemCoverage,
    LotCandidate,
    LotPick,
    OrderAllocationSummary,
    OrderItemSnapshot,
    OrderLine,
    OrderSnapshot,
    ShipmentRecord,
)
from fulfillment_kernel.domain.lot_selection import (
    AllocationStrategy,
    choose_lot,
    parse_strategy,
    plan_lot_picks,
    rank_lots,
)
from fulfillment_kernel.domain.policy import AllocationPolicy, FulfillmentPolicy
from fulfillment_kernel.domain.workflow import (
    FULFILLMENT_WORKFLOW,
    ORDER_WORKFLOW,
    SHIPMENT_WORKFLOW,
    Transition,
    Workflow,
    validate_transition,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ActivityEntryRecord",
    "AllocationRecord",
    "FulfillmentProgress",
    "ItemCoverage",
    "LotCandidate",
    "LotPick",
    "OrderAllocationSummary",
    "OrderItemSnapshot",
    "OrderLine",
    "OrderSnapshot",
    "ShipmentRecord",
    "AllocationStrategy",
    "choose_lot",
    "parse_strategy",
    "plan_lot_picks",
    "rank_lots",
    "AllocationPolicy",
    "FulfillmentPolicy",
    "FULFILLMENT_WORKFLOW",
    "ORDER_WORKFLOW",
    "SHIPMENT_WORKFLOW",
    "Transition",
    "Workflow",
    "validate_transition",
]

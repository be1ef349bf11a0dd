"""
Kernel services.

``AllocationService`` is the public entry point; the other services are its
collaborators and run inside its transaction.
"""

from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.allocation_service import (
    AllocationResult,
    AllocationService,
    AllocationStatusCode,
    FulfillmentResult,
    LotAdjustmentResult,
)
from fulfillment_kernel.services.allocation_writer import AllocationWriter
from fulfillment_kernel.services.fulfillment_orchestrator import FulfillmentOrchestrator
from fulfillment_kernel.services.lot_adjustment_service import LotAdjustmentService
from fulfillment_kernel.services.lot_intake_service import LotIntakeService
from fulfillment_kernel.services.lot_selector import LotSelector
from fulfillment_kernel.services.order_gatekeeper import OrderGatekeeper

__all__ = [
    "ActivityLogWriter",
    "AllocationResult",
    "AllocationService",
    "AllocationStatusCode",
    "AllocationWriter",
    "FulfillmentOrchestrator",
    "FulfillmentResult",
    "LotAdjustmentResult",
    "LotAdjustmentService",
    "LotIntakeService",
    "LotSelector",
    "OrderGatekeeper",
]

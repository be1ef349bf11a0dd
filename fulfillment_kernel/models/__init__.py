"""ORM models for the fulfillment kernel."""

from fulfillment_kernel.models.activity_log import (
    ActivityAction,
    AdjustmentType,
    InventoryActivityLog,
    QuantityBasis,
)
from fulfillment_kernel.models.allocation import (
    LIVE_ALLOCATION_STATUSES,
    RESERVING_ALLOCATION_STATUSES,
    AllocationStatus,
    InventoryAllocation,
)
from fulfillment_kernel.models.inventory_lot import InventoryLot, LotStatus
from fulfillment_kernel.models.order import (
    Order,
    OrderItem,
    OrderItemStatus,
    OrderStatus,
)
from fulfillment_kernel.models.shipment import (
    FulfillmentStatus,
    OrderFulfillment,
    Shipment,
    ShipmentBatch,
    ShipmentStatus,
)

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderItemStatus",
    "InventoryLot",
    "LotStatus",
    "InventoryAllocation",
    "AllocationStatus",
    "LIVE_ALLOCATION_STATUSES",
    "RESERVING_ALLOCATION_STATUSES",
    "InventoryActivityLog",
    "ActivityAction",
    "AdjustmentType",
    "QuantityBasis",
    "Shipment",
    "ShipmentBatch",
    "ShipmentStatus",
    "OrderFulfillment",
    "FulfillmentStatus",
]

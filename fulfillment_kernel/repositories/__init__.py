"""SQLAlchemy adapters implementing the ports in fulfillment_kernel.domain.ports."""

from fulfillment_kernel.repositories.activity_log_repository import SqlActivityLogRepository
from fulfillment_kernel.repositories.allocation_repository import SqlAllocationRepository
from fulfillment_kernel.repositories.base import BaseRepository, translate_persistence_errors
from fulfillment_kernel.repositories.lot_repository import SqlInventoryLotRepository
from fulfillment_kernel.repositories.order_repository import SqlOrderRepository
from fulfillment_kernel.repositories.shipment_repository import SqlShipmentRepository

__all__ = [
    "BaseRepository",
    "translate_persistence_errors",
    "SqlActivityLogRepository",
    "SqlAllocationRepository",
    "SqlInventoryLotRepository",
    "SqlOrderRepository",
    "SqlShipmentRepository",
]

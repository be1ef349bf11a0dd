"""
Ports -- the collaborator interfaces the kernel's services depend on.

Services receive implementations through their constructors.  The
SQLAlchemy adapters in ``fulfillment_kernel.repositories`` satisfy these
protocols; tests may substitute in-memory fakes.

No ORM import appears here: ports speak in DTOs and the kernel's own
models only where a caller must hold the persisted row.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

from fulfillment_kernel.domain.dtos import LotCandidate, OrderSnapshot

if TYPE_CHECKING:
    from fulfillment_kernel.domain.lot_selection import AllocationStrategy
    from fulfillment_kernel.models.activity_log import InventoryActivityLog
    from fulfillment_kernel.models.allocation import InventoryAllocation
    from fulfillment_kernel.models.inventory_lot import InventoryLot
    from fulfillment_kernel.models.order import Order
    from fulfillment_kernel.models.shipment import (
        OrderFulfillment,
        Shipment,
        ShipmentBatch,
    )


class OrderRepository(Protocol):
    """Read access to orders plus the single status compare-and-set."""

    def get_order_status_and_items(
        self, order_id: UUID, *, for_update: bool = False
    ) -> OrderSnapshot | None:
        ...

    def get_order(self, order_id: UUID, *, for_update: bool = False) -> Order | None:
        ...

    def compare_and_set_status(
        self,
        order_id: UUID,
        expected_status: str,
        new_status: str,
        actor_id: UUID,
    ) -> bool:
        ...


class InventoryLotRepository(Protocol):
    """Lot reads and the atomic conditional quantity updates."""

    def get(self, lot_id: UUID) -> InventoryLot | None:
        ...

    def list_candidates(self, product_id: UUID, warehouse_id: UUID) -> list[LotCandidate]:
        ...

    def get_available_lot(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        strategy: AllocationStrategy,
        *,
        eligible_statuses: Iterable[str] | None = None,
        today: date | None = None,
        exclude_expired: bool = False,
    ) -> LotCandidate | None:
        ...

    def decrement_lot_quantity(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        ...

    def increment_lot_quantity(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        ...

    def consume_reserved(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        ...

    def restock(self, lot_id: UUID, quantity: Decimal) -> tuple[bool, Decimal]:
        ...

    def adjust_on_hand(self, lot_id: UUID, delta: Decimal) -> tuple[bool, Decimal]:
        ...

    def add(self, lot: InventoryLot) -> InventoryLot:
        ...


class AllocationRepository(Protocol):
    """Append-only allocation rows."""

    def add(self, allocation: InventoryAllocation) -> InventoryAllocation:
        ...

    def get(self, allocation_id: UUID) -> InventoryAllocation | None:
        ...

    def list_for_order(self, order_id: UUID, *, live_only: bool = False) -> list[InventoryAllocation]:
        ...

    def allocated_quantity_for_item(self, order_item_id: UUID) -> Decimal:
        ...


class ActivityLogRepository(Protocol):
    """Append-only activity log rows."""

    def append(self, entry: InventoryActivityLog) -> InventoryActivityLog:
        ...

    def next_sequence(self, lot_id: UUID) -> int:
        ...

    def list_for_lot(self, lot_id: UUID) -> list[InventoryActivityLog]:
        ...


class ShipmentRepository(Protocol):
    """Shipments, their batches and per-item fulfillment rows."""

    def add(self, shipment: Shipment) -> Shipment:
        ...

    def get(self, shipment_id: UUID) -> Shipment | None:
        ...

    def list_for_order(self, order_id: UUID) -> list[Shipment]:
        ...

    def add_batch(self, batch: ShipmentBatch) -> ShipmentBatch:
        ...

    def shipped_allocation_ids(self, allocation_ids: Sequence[UUID]) -> set[UUID]:
        ...

    def add_fulfillment(self, fulfillment: OrderFulfillment) -> OrderFulfillment:
        ...

    def list_fulfillments(self, order_id: UUID) -> list[OrderFulfillment]:
        ...


@runtime_checkable
class PermissionChecker(Protocol):
    """
    Authorization service consulted by callers BEFORE invoking the kernel.

    The kernel never authorizes; it only records the actor.
    """

    def check_permissions(self, actor: Any, required_permissions: Sequence[str]) -> bool:
        ...

"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures that cross the kernel's seams: order snapshots
    returned by the order port, lot candidates fed to lot selection, and
    read-side records returned by services and selectors.

Architecture position:
    Kernel > Domain -- zero I/O.  ``from_model()`` class methods are boundary
    converters invoked from repositories, services and selectors, never from
    domain logic.

Invariants enforced:
    - Domain logic accepts and returns DTOs, never ORM entities.
    - Quantities are Decimal, never float.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from fulfillment_kernel.models.activity_log import InventoryActivityLog
    from fulfillment_kernel.models.allocation import InventoryAllocation
    from fulfillment_kernel.models.inventory_lot import InventoryLot
    from fulfillment_kernel.models.shipment import Shipment


# =============================================================================
# Order side
# =============================================================================


@dataclass(frozen=True)
class OrderItemSnapshot:
    """An order item with its derived allocated-to-date quantity."""

    order_item_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    quantity_allocated: Decimal
    status: str

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity_ordered - self.quantity_allocated

    @property
    def is_fully_covered(self) -> bool:
        return self.quantity_allocated >= self.quantity_ordered


@dataclass(frozen=True)
class OrderSnapshot:
    """Order status and items as seen by the gatekeeper."""

    order_id: UUID
    status: str
    category: str | None
    items: tuple[OrderItemSnapshot, ...]

    def item_for_product(self, product_id: UUID) -> OrderItemSnapshot | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def all_items_covered(self) -> bool:
        return all(item.is_fully_covered for item in self.items)


@dataclass(frozen=True)
class OrderLine:
    """
    The validated order line an allocation will be written against.

    Produced by the gatekeeper; ``remaining_quantity`` is as observed at
    validation time and re-checked by the allocation writer.
    """

    order_id: UUID
    order_status: str
    order_item_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    quantity_allocated: Decimal

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity_ordered - self.quantity_allocated


# =============================================================================
# Lot side
# =============================================================================


@dataclass(frozen=True)
class LotCandidate:
    """A lot considered by lot selection, with quantities at read time."""

    lot_id: UUID
    warehouse_id: UUID
    product_id: UUID
    lot_number: str
    on_hand_quantity: Decimal
    reserved_quantity: Decimal
    status: str
    expiry_date: date | None = None
    inbound_date: date | None = None
    manufacture_date: date | None = None

    @property
    def available_quantity(self) -> Decimal:
        return self.on_hand_quantity - self.reserved_quantity

    @classmethod
    def from_model(cls, model: InventoryLot) -> LotCandidate:
        return cls(
            lot_id=model.id,
            warehouse_id=model.warehouse_id,
            product_id=model.product_id,
            lot_number=model.lot_number,
            on_hand_quantity=model.on_hand_quantity,
            reserved_quantity=model.reserved_quantity,
            status=model.status,
            expiry_date=model.expiry_date,
            inbound_date=model.inbound_date,
            manufacture_date=model.manufacture_date,
        )


@dataclass(frozen=True)
class LotPick:
    """One leg of a lot pick plan: take ``quantity`` from ``lot``."""

    lot: LotCandidate
    quantity: Decimal


# =============================================================================
# Read-side records
# =============================================================================


@dataclass(frozen=True)
class AllocationRecord:
    """Read-side view of an InventoryAllocation row."""

    id: UUID
    order_id: UUID
    order_item_id: UUID
    warehouse_id: UUID
    lot_id: UUID | None
    allocated_quantity: Decimal
    status: str
    created_by_id: UUID
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: InventoryAllocation) -> AllocationRecord:
        return cls(
            id=model.id,
            order_id=model.order_id,
            order_item_id=model.order_item_id,
            warehouse_id=model.warehouse_id,
            lot_id=model.lot_id,
            allocated_quantity=model.allocated_quantity,
            status=model.status,
            created_by_id=model.created_by_id,
            created_at=model.created_at,
        )


@dataclass(frozen=True)
class ActivityEntryRecord:
    """Read-side view of an InventoryActivityLog row."""

    id: UUID
    lot_id: UUID
    sequence: int
    action: str
    quantity_basis: str
    previous_quantity: Decimal
    quantity_change: Decimal
    new_quantity: Decimal
    actor_id: UUID
    occurred_at: datetime
    checksum: str
    order_id: UUID | None = None
    allocation_id: UUID | None = None
    shipment_id: UUID | None = None
    comment: str | None = None
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_model(cls, model: InventoryActivityLog) -> ActivityEntryRecord:
        return cls(
            id=model.id,
            lot_id=model.lot_id,
            sequence=model.sequence,
            action=model.action,
            quantity_basis=model.quantity_basis,
            previous_quantity=model.previous_quantity,
            quantity_change=model.quantity_change,
            new_quantity=model.new_quantity,
            actor_id=model.actor_id,
            occurred_at=model.occurred_at,
            checksum=model.checksum,
            order_id=model.order_id,
            allocation_id=model.allocation_id,
            shipment_id=model.shipment_id,
            comment=model.comment,
            metadata=dict(model.activity_metadata) if model.activity_metadata else None,
        )


@dataclass(frozen=True)
class ShipmentRecord:
    """Read-side view of a Shipment with its packed allocation ids."""

    id: UUID
    order_id: UUID
    warehouse_id: UUID
    status: str
    tracking_number: str | None
    carrier: str | None
    shipped_at: datetime | None
    allocation_ids: tuple[UUID, ...] = ()

    @classmethod
    def from_model(cls, model: Shipment) -> ShipmentRecord:
        return cls(
            id=model.id,
            order_id=model.order_id,
            warehouse_id=model.warehouse_id,
            status=model.status,
            tracking_number=model.tracking_number,
            carrier=model.carrier,
            shipped_at=model.shipped_at,
            allocation_ids=tuple(b.allocation_id for b in model.batches),
        )


@dataclass(frozen=True)
class ItemCoverage:
    """Allocation coverage of one order item."""

    order_item_id: UUID
    product_id: UUID
    quantity_ordered: Decimal
    quantity_allocated: Decimal

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity_ordered - self.quantity_allocated


@dataclass(frozen=True)
class OrderAllocationSummary:
    """Order status plus per-item coverage and live allocations."""

    order_id: UUID
    status: str
    items: tuple[ItemCoverage, ...]
    allocations: tuple[AllocationRecord, ...]

    @property
    def is_fully_allocated(self) -> bool:
        return all(i.quantity_allocated >= i.quantity_ordered for i in self.items)


@dataclass(frozen=True)
class FulfillmentProgress:
    """What one fulfillment step changed."""

    order_id: UUID
    order_status: str
    shipment_ids: tuple[UUID, ...] = ()
    consumed_allocation_ids: tuple[UUID, ...] = ()
    released_allocation_ids: tuple[UUID, ...] = ()

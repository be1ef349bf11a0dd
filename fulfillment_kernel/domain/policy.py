"""
Kernel-side policy objects.

Responsibility:
    Frozen, validated settings that services receive through their
    constructors.  The kernel never reads configuration files; the
    ``fulfillment_config`` package parses YAML into these types.

Architecture position:
    Kernel > Domain -- zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass

VALID_STRATEGIES = frozenset({"FIFO", "FEFO"})


@dataclass(frozen=True)
class AllocationPolicy:
    """
    Rules the gatekeeper and lot selector apply to allocation requests.

    allocatable_order_statuses:
        Order statuses in which allocation is accepted.  ``confirmed`` is
        the entry state; ``allocating`` and ``partial`` keep multi-item and
        retried orders allocatable.  ``pending`` is always rejected.
    allow_lot_splitting:
        When False, a request is served from exactly one lot that covers it
        in full, or fails.  When True, it may be split across lots in
        strategy order.
    exclude_expired_lots:
        Under FEFO, skip lots whose expiry date is before today.
    """

    allocatable_order_statuses: tuple[str, ...] = ("confirmed", "allocating", "partial")
    allocatable_item_statuses: tuple[str, ...] = ("confirmed",)
    eligible_lot_statuses: tuple[str, ...] = ("in_stock",)
    default_strategy: str = "FEFO"
    allow_lot_splitting: bool = False
    exclude_expired_lots: bool = False

    def __post_init__(self) -> None:
        if not self.allocatable_order_statuses:
            raise ValueError("allocatable_order_statuses must not be empty")
        if "pending" in self.allocatable_order_statuses:
            raise ValueError("pending orders can never be allocatable")
        if self.default_strategy.upper() not in VALID_STRATEGIES:
            raise ValueError(
                f"Invalid default_strategy: {self.default_strategy!r}. "
                f"Must be one of {sorted(VALID_STRATEGIES)}"
            )
        if not self.eligible_lot_statuses:
            raise ValueError("eligible_lot_statuses must not be empty")


@dataclass(frozen=True)
class FulfillmentPolicy:
    """Rules the fulfillment orchestrator applies to shipments and cancellation.

    restock_on_cancel:
        When an order is cancelled after its stock was consumed, put the
        consumed quantity back on the lot.  When False the stock is treated
        as written off.
    """

    require_tracking_for_shipment: bool = True
    restock_on_cancel: bool = True

"""
Lot selection -- pure FIFO / FEFO ranking.

Responsibility:
    Given lot candidates for one product in one warehouse, rank them under a
    strategy and choose the lot (or, when splitting is enabled, the lots)
    that satisfy a requested quantity.

Architecture position:
    Kernel > Domain -- zero I/O.  The LotSelector service feeds it
    candidates read through the InventoryLotRepository port.

Ordering rules:
    FEFO  ascending expiry_date   (earliest-expiring first)
    FIFO  ascending inbound_date  (oldest stock first)
    Lots missing the sort date rank after every dated lot.  Ties are broken
    by the lot id's string form, lower first, so selection is deterministic.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from enum import Enum

from fulfillment_kernel.domain.dtos import LotCandidate, LotPick
from fulfillment_kernel.exceptions import InvalidStrategyError


class AllocationStrategy(str, Enum):
    """Lot ordering strategy."""

    FIFO = "FIFO"
    FEFO = "FEFO"


def parse_strategy(value: str | AllocationStrategy) -> AllocationStrategy:
    """
    Parse a strategy flag, case-insensitively.

    Raises:
        InvalidStrategyError: for anything other than FIFO / FEFO.
    """
    if isinstance(value, AllocationStrategy):
        return value
    try:
        return AllocationStrategy(str(value).strip().upper())
    except ValueError:
        raise InvalidStrategyError(str(value))


def sort_key(lot: LotCandidate, strategy: AllocationStrategy) -> tuple:
    sort_date = lot.expiry_date if strategy == AllocationStrategy.FEFO else lot.inbound_date
    return (sort_date is None, sort_date or date.min, str(lot.lot_id))


def rank_lots(
    candidates: Iterable[LotCandidate],
    strategy: AllocationStrategy,
    *,
    eligible_statuses: Iterable[str] | None = None,
    today: date | None = None,
    exclude_expired: bool = False,
) -> list[LotCandidate]:
    """
    Filter out ineligible lots and return the rest in strategy order.

    A lot is dropped when its status is not in ``eligible_statuses`` (if
    given), when it has nothing available, or -- under FEFO with
    ``exclude_expired`` -- when its expiry date is before ``today``.
    """
    statuses = frozenset(eligible_statuses) if eligible_statuses is not None else None
    ranked = []
    for lot in candidates:
        if statuses is not None and lot.status not in statuses:
            continue
        if lot.available_quantity <= 0:
            continue
        if (
            exclude_expired
            and strategy == AllocationStrategy.FEFO
            and today is not None
            and lot.expiry_date is not None
            and lot.expiry_date < today
        ):
            continue
        ranked.append(lot)
    ranked.sort(key=lambda lot: sort_key(lot, strategy))
    return ranked


def choose_lot(
    candidates: Iterable[LotCandidate],
    quantity: Decimal,
    strategy: AllocationStrategy,
    **filters,
) -> LotCandidate | None:
    """The best single lot with ``available >= quantity``, or None."""
    for lot in rank_lots(candidates, strategy, **filters):
        if lot.available_quantity >= quantity:
            return lot
    return None


def plan_lot_picks(
    candidates: Iterable[LotCandidate],
    quantity: Decimal,
    strategy: AllocationStrategy,
    **filters,
) -> list[LotPick] | None:
    """
    Split ``quantity`` across lots in strategy order.

    Each lot contributes min(available, still needed).  Returns None when
    the eligible lots together hold less than ``quantity``; a plan is
    never partial.
    """
    needed = quantity
    picks: list[LotPick] = []
    for lot in rank_lots(candidates, strategy, **filters):
        if needed <= 0:
            break
        take = min(lot.available_quantity, needed)
        picks.append(LotPick(lot=lot, quantity=take))
        needed -= take
    if needed > 0:
        return None
    return picks

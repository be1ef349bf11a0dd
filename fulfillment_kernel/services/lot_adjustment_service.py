"""
LotAdjustmentService -- manual corrections to a lot's on-hand quantity.

Damaged, lost or found stock and stock-count corrections are applied as one
conditional UPDATE plus one signed ADJUST entry.  The trail is never edited:
a correction is a new entry, and replaying the trail still reproduces the
lot's quantities.

Invariants enforced:
    - on_hand never drops below reserved: stock promised to orders cannot be
      adjusted away (the UPDATE's WHERE clause carries the check).
    - DAMAGED and LOST only decrease, FOUND only increases, COUNT_CORRECTION
      goes either way.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.workflow import state_name
from fulfillment_kernel.exceptions import (
    InvalidAdjustmentTypeError,
    InvalidQuantityError,
    LotAdjustmentRejectedError,
    LotNotFoundError,
)
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.activity_log import (
    ActivityAction,
    AdjustmentType,
    InventoryActivityLog,
)
from fulfillment_kernel.models.inventory_lot import LotStatus
from fulfillment_kernel.repositories.lot_repository import SqlInventoryLotRepository
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.lot_adjustment")

_DECREASE_ONLY = frozenset({AdjustmentType.DAMAGED, AdjustmentType.LOST})
_INCREASE_ONLY = frozenset({AdjustmentType.FOUND})


def parse_adjustment_type(value: AdjustmentType | str) -> AdjustmentType:
    try:
        return AdjustmentType(state_name(value).strip().lower())
    except (AttributeError, ValueError):
        raise InvalidAdjustmentTypeError(str(value))


class LotAdjustmentService(BaseService):
    """Applies signed on-hand corrections with an ADJUST trail entry."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lot_repository: SqlInventoryLotRepository | None = None,
        activity_log: ActivityLogWriter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._lots = lot_repository or SqlInventoryLotRepository(session)
        self._activity = activity_log or ActivityLogWriter(session, self._clock)

    def adjust_lot(
        self,
        lot_id: UUID,
        adjusted_quantity: Decimal,
        adjustment_type: AdjustmentType | str,
        actor_id: UUID,
        comment: str | None = None,
    ) -> InventoryActivityLog:
        """
        Add ``adjusted_quantity`` (signed) to the lot's on-hand quantity.

        Returns:
            The ADJUST entry; its previous/new quantities are the lot's
            on-hand before and after.

        Raises:
            InvalidQuantityError: zero or malformed adjustment.
            InvalidAdjustmentTypeError: unknown type, or a direction the
                type does not allow.
            LotNotFoundError: no such lot.
            LotAdjustmentRejectedError: the decrease exceeds the units not
                held by reservations.
        """
        delta = to_quantity(adjusted_quantity)
        if delta == ZERO:
            raise InvalidQuantityError(str(delta), "adjustment must not be zero")
        kind = parse_adjustment_type(adjustment_type)
        if delta < ZERO and kind in _INCREASE_ONLY:
            raise InvalidAdjustmentTypeError(kind.value, "only increases stock")
        if delta > ZERO and kind in _DECREASE_ONLY:
            raise InvalidAdjustmentTypeError(kind.value, "only decreases stock")

        with LogContext.bind(lot_id=lot_id):
            lot = self._lots.get(lot_id)
            if lot is None:
                raise LotNotFoundError(str(lot_id))

            ok, new_on_hand = self._lots.adjust_on_hand(lot_id, delta)
            if not ok:
                refreshed = self._lots.refresh(lot_id)
                available = refreshed.available_quantity if refreshed is not None else ZERO
                logger.warning(
                    "lot_adjustment_rejected",
                    extra={"adjustment": str(delta), "available": str(available)},
                )
                raise LotAdjustmentRejectedError(str(lot_id), str(delta), str(available))

            entry = self._activity.record_activity(
                entity_id=lot_id,
                action=ActivityAction.ADJUST,
                previous_quantity=new_on_hand - delta,
                quantity=abs(delta),
                actor_id=actor_id,
                comment=comment,
                metadata={"adjustment_type": kind.value},
                decrease=delta < ZERO,
            )

            if new_on_hand == ZERO and lot.status == LotStatus.IN_STOCK.value:
                self._lots.set_status(lot, LotStatus.OUT_OF_STOCK.value, actor_id)
            elif new_on_hand > ZERO and lot.status == LotStatus.OUT_OF_STOCK.value:
                self._lots.set_status(lot, LotStatus.IN_STOCK.value, actor_id)

            logger.info(
                "lot_adjusted",
                extra={
                    "adjustment_type": kind.value,
                    "adjustment": str(delta),
                    "new_on_hand": str(new_on_hand),
                },
            )
        return entry

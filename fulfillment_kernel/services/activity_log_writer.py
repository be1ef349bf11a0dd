"""
ActivityLogWriter -- append-only, checksummed audit trail for lot quantities.

Responsibility:
    Writes one ``InventoryActivityLog`` row for every lot quantity mutation
    and verifies trails written earlier.  The direction of a change comes
    from its action:

        RESERVE, FULFILL           deductions  (quantity_change = -N)
        RECEIVE, RELEASE, RESTOCK  additions   (quantity_change = +N)
        ADJUST                     either, chosen by the caller

    RESERVE and RELEASE describe the lot's *available* quantity; RECEIVE,
    FULFILL, RESTOCK and ADJUST describe its *on-hand* quantity.

Architecture position:
    Kernel > Services.  Called by AllocationWriter, LotIntakeService and
    LotAdjustmentService in the same transaction as the quantity update it
    records.

Invariants enforced:
    - new_quantity == previous_quantity + quantity_change, exactly.
    - checksum == compute_activity_checksum(lot, previous, new, time, actor).
    - Entries are numbered per lot (1, 2, 3, ...) and never updated.

Failure modes:
    - InvalidQuantityError if N <= 0.
    - ActivityLogIntegrityError from verify_entry / verify_lot_trail.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.workflow import state_name
from fulfillment_kernel.exceptions import ActivityLogIntegrityError, InvalidQuantityError, LotNotFoundError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.activity_log import (
    ActivityAction,
    InventoryActivityLog,
    QuantityBasis,
)
from fulfillment_kernel.models.inventory_lot import InventoryLot
from fulfillment_kernel.repositories.activity_log_repository import SqlActivityLogRepository
from fulfillment_kernel.services.base import BaseService
from fulfillment_kernel.utils.hashing import compute_activity_checksum

logger = get_logger("services.activity_log")

_DEDUCTIONS = frozenset({ActivityAction.RESERVE.value, ActivityAction.FULFILL.value})

_AVAILABLE_BASIS = frozenset({ActivityAction.RESERVE.value, ActivityAction.RELEASE.value})


def signed_change(
    action: ActivityAction | str, quantity: Decimal, *, decrease: bool = False
) -> Decimal:
    """
    The signed quantity change for an action moving ``quantity`` units.

    ``decrease`` selects the direction of an ADJUST and is rejected for
    every other action.
    """
    name = state_name(action)
    if name == ActivityAction.ADJUST.value:
        return -quantity if decrease else quantity
    if decrease:
        raise ValueError(f"direction is fixed for {name} entries")
    if name in _DEDUCTIONS:
        return -quantity
    return quantity


def basis_for(action: ActivityAction | str) -> QuantityBasis:
    if state_name(action) in _AVAILABLE_BASIS:
        return QuantityBasis.AVAILABLE
    return QuantityBasis.ON_HAND


class ActivityLogWriter(BaseService):
    """Records and verifies lot activity entries."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        log_repository: SqlActivityLogRepository | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._logs = log_repository or SqlActivityLogRepository(session)

    def record_activity(
        self,
        entity_id: UUID,
        action: ActivityAction | str,
        previous_quantity: Decimal,
        quantity: Decimal,
        actor_id: UUID,
        comment: str | None = None,
        metadata: dict[str, Any] | None = None,
        order_id: UUID | None = None,
        allocation_id: UUID | None = None,
        shipment_id: UUID | None = None,
        *,
        decrease: bool = False,
    ) -> InventoryActivityLog:
        """
        Append one entry to the lot's trail.

        Args:
            entity_id: The lot whose quantity changed.
            action: What happened; fixes the sign and basis of the change.
            previous_quantity: The basis quantity before the change.
            quantity: Units moved, strictly positive.
            actor_id: Who caused the change.
            decrease: For ADJUST only, record a deduction.

        Returns:
            The flushed InventoryActivityLog row.
        """
        action = ActivityAction(state_name(action))
        quantity = to_quantity(quantity)
        if quantity <= ZERO:
            raise InvalidQuantityError(str(quantity))
        previous_quantity = to_quantity(previous_quantity)

        change = signed_change(action, quantity, decrease=decrease)
        new_quantity = previous_quantity + change
        occurred_at = self._clock.now()

        entry = InventoryActivityLog(
            lot_id=entity_id,
            sequence=self._logs.next_sequence(entity_id),
            action=action.value,
            quantity_basis=basis_for(action).value,
            previous_quantity=previous_quantity,
            quantity_change=change,
            new_quantity=new_quantity,
            actor_id=actor_id,
            occurred_at=occurred_at,
            checksum=compute_activity_checksum(
                entity_id, previous_quantity, new_quantity, occurred_at, actor_id
            ),
            order_id=order_id,
            allocation_id=allocation_id,
            shipment_id=shipment_id,
            comment=comment,
            activity_metadata=metadata,
        )
        self._logs.append(entry)

        logger.info(
            "activity_recorded",
            extra={
                "lot_id": str(entity_id),
                "action": action.value,
                "sequence": entry.sequence,
                "previous_quantity": str(previous_quantity),
                "quantity_change": str(change),
                "new_quantity": str(new_quantity),
            },
        )
        return entry

    # -------------------------------------------------------------------------
    # Verification
    # -------------------------------------------------------------------------

    def verify_entry(self, entry: InventoryActivityLog) -> None:
        """
        Recompute one entry's arithmetic, sign and checksum.

        Raises:
            ActivityLogIntegrityError: on the first mismatch found.
        """
        entry_id = str(entry.id)
        if entry.previous_quantity + entry.quantity_change != entry.new_quantity:
            raise ActivityLogIntegrityError(
                entry_id,
                f"{entry.previous_quantity} + {entry.quantity_change} != {entry.new_quantity}",
            )
        if entry.quantity_change == 0 or (
            entry.action != ActivityAction.ADJUST.value
            and (entry.quantity_change < 0) != (entry.action in _DEDUCTIONS)
        ):
            raise ActivityLogIntegrityError(
                entry_id, f"quantity_change {entry.quantity_change} has wrong sign for {entry.action}"
            )
        if entry.quantity_basis != basis_for(entry.action).value:
            raise ActivityLogIntegrityError(
                entry_id, f"basis {entry.quantity_basis} does not match action {entry.action}"
            )
        expected = compute_activity_checksum(
            entry.lot_id,
            entry.previous_quantity,
            entry.new_quantity,
            entry.occurred_at,
            entry.actor_id,
        )
        if expected != entry.checksum:
            raise ActivityLogIntegrityError(entry_id, "checksum mismatch")

    def verify_lot_trail(self, lot_id: UUID) -> int:
        """
        Replay a lot's trail from zero and compare with the lot row.

        Each entry's previous quantity must equal the replayed quantity on
        its basis, and the replay must end at the lot's current on-hand and
        reserved quantities.

        Returns:
            The number of entries verified.

        Raises:
            LotNotFoundError: if the lot does not exist.
            ActivityLogIntegrityError: on any mismatch.
        """
        lot = self.session.get(InventoryLot, lot_id, populate_existing=True)
        if lot is None:
            raise LotNotFoundError(str(lot_id))

        entries = self._logs.list_for_lot(lot_id)
        on_hand = ZERO
        reserved = ZERO
        for position, entry in enumerate(entries, start=1):
            self.verify_entry(entry)
            entry_id = str(entry.id)
            if entry.sequence != position:
                raise ActivityLogIntegrityError(
                    entry_id, f"sequence gap: expected {position}, found {entry.sequence}"
                )
            observed = on_hand - reserved if entry.quantity_basis == QuantityBasis.AVAILABLE.value else on_hand
            if entry.previous_quantity != observed:
                raise ActivityLogIntegrityError(
                    entry_id,
                    f"previous_quantity {entry.previous_quantity} does not continue "
                    f"the trail at {observed}",
                )
            units = abs(entry.quantity_change)
            if entry.action == ActivityAction.RESERVE.value:
                reserved += units
            elif entry.action == ActivityAction.RELEASE.value:
                reserved -= units
            elif entry.action == ActivityAction.FULFILL.value:
                on_hand -= units
                reserved -= units
            elif entry.action == ActivityAction.ADJUST.value:
                on_hand += entry.quantity_change
            else:
                on_hand += units

        if on_hand != lot.on_hand_quantity or reserved != lot.reserved_quantity:
            raise ActivityLogIntegrityError(
                str(lot_id),
                f"trail replays to on_hand={on_hand} reserved={reserved}, lot holds "
                f"on_hand={lot.on_hand_quantity} reserved={lot.reserved_quantity}",
            )

        logger.info(
            "lot_trail_verified",
            extra={"lot_id": str(lot_id), "entry_count": len(entries)},
        )
        return len(entries)

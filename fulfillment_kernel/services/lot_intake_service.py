"""
LotIntakeService -- bring new stock into the system.

A lot is created with its full on-hand quantity and nothing reserved, and
its trail opens with a RECEIVE entry from zero.  This is the only way lot
rows come into existence inside the kernel, so every lot's trail replays
from zero to its current quantities.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import ZERO, to_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.exceptions import InvalidQuantityError
from fulfillment_kernel.logging_config import get_logger
from fulfillment_kernel.models.activity_log import ActivityAction
from fulfillment_kernel.models.inventory_lot import InventoryLot, LotStatus
from fulfillment_kernel.repositories.lot_repository import SqlInventoryLotRepository
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.base import BaseService

logger = get_logger("services.lot_intake")

PRODUCT_KINDS = ("sku", "packaging_material")


class LotIntakeService(BaseService):
    """Creates inventory lots with an opening RECEIVE entry."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        activity_log: ActivityLogWriter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._lots = SqlInventoryLotRepository(session)
        self._activity = activity_log or ActivityLogWriter(session, self._clock)

    def receive_lot(
        self,
        warehouse_id: UUID,
        product_id: UUID,
        lot_number: str,
        quantity: Decimal,
        actor_id: UUID,
        *,
        product_kind: str = "sku",
        expiry_date: date | None = None,
        manufacture_date: date | None = None,
        inbound_date: date | None = None,
        comment: str | None = None,
    ) -> InventoryLot:
        """
        Create a lot holding ``quantity`` units.

        ``inbound_date`` defaults to the clock's date.

        Raises:
            ValueError: for an unknown ``product_kind``.
            InvalidQuantityError: if ``quantity`` is not positive.
        """
        if product_kind not in PRODUCT_KINDS:
            raise ValueError(f"product_kind must be one of {PRODUCT_KINDS}, got {product_kind!r}")
        quantity = to_quantity(quantity)
        if quantity <= ZERO:
            raise InvalidQuantityError(str(quantity))

        lot = self._lots.add(
            InventoryLot(
                warehouse_id=warehouse_id,
                sku_id=product_id if product_kind == "sku" else None,
                packaging_material_id=product_id if product_kind == "packaging_material" else None,
                lot_number=lot_number,
                on_hand_quantity=quantity,
                reserved_quantity=ZERO,
                expiry_date=expiry_date,
                manufacture_date=manufacture_date,
                inbound_date=inbound_date or self._clock.today(),
                status=LotStatus.IN_STOCK.value,
                created_by_id=actor_id,
            )
        )
        self._activity.record_activity(
            entity_id=lot.id,
            action=ActivityAction.RECEIVE,
            previous_quantity=ZERO,
            quantity=quantity,
            actor_id=actor_id,
            comment=comment,
            metadata={"lot_number": lot_number},
        )

        logger.info(
            "lot_received",
            extra={
                "lot_id": str(lot.id),
                "warehouse_id": str(warehouse_id),
                "lot_number": lot_number,
                "quantity": str(quantity),
            },
        )
        return lot

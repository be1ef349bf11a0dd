"""
LotSelector -- choose the lot (or lots) to reserve from.

Thin shell over the InventoryLotRepository port: single-lot selection goes
through ``get_available_lot``, split plans rank the port's candidates with
``fulfillment_kernel.domain.lot_selection``.  Both apply the AllocationPolicy
filters (eligible lot statuses, FEFO expiry cut-off at the clock's date).
"""

from decimal import Decimal
from uuid import UUID

from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import LotCandidate, LotPick
from fulfillment_kernel.domain.lot_selection import AllocationStrategy, parse_strategy
from fulfillment_kernel.domain.lot_selection import plan_lot_picks as _plan_lot_picks
from fulfillment_kernel.domain.policy import AllocationPolicy
from fulfillment_kernel.domain.ports import InventoryLotRepository
from fulfillment_kernel.exceptions import NoEligibleLotError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("services.lot_selector")


class LotSelector:
    """Selects lots under FIFO / FEFO."""

    def __init__(
        self,
        lot_repository: InventoryLotRepository,
        policy: AllocationPolicy | None = None,
        clock: Clock | None = None,
    ):
        self._lots = lot_repository
        self._policy = policy or AllocationPolicy()
        self._clock = clock or SystemClock()

    def _filters(self) -> dict:
        return {
            "eligible_statuses": self._policy.eligible_lot_statuses,
            "today": self._clock.today(),
            "exclude_expired": self._policy.exclude_expired_lots,
        }

    def select_lot(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        strategy: AllocationStrategy | str | None = None,
    ) -> LotCandidate:
        """
        The best single lot holding at least ``quantity`` available.

        Raises:
            InvalidStrategyError: for an unknown strategy flag.
            NoEligibleLotError: when no lot qualifies.
        """
        strategy = parse_strategy(strategy or self._policy.default_strategy)
        lot = self._lots.get_available_lot(
            product_id, warehouse_id, quantity, strategy, **self._filters()
        )
        if lot is None:
            logger.info(
                "no_eligible_lot",
                extra={
                    "product_id": str(product_id),
                    "warehouse_id": str(warehouse_id),
                    "quantity": str(quantity),
                    "strategy": strategy.value,
                },
            )
            raise NoEligibleLotError(str(product_id), str(warehouse_id), str(quantity), strategy.value)

        logger.debug(
            "lot_selected",
            extra={"lot_id": str(lot.lot_id), "strategy": strategy.value},
        )
        return lot

    def plan_lot_picks(
        self,
        product_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        strategy: AllocationStrategy | str | None = None,
    ) -> list[LotPick]:
        """
        Split ``quantity`` across lots in strategy order.

        Raises:
            NoEligibleLotError: when the eligible lots together fall short.
        """
        strategy = parse_strategy(strategy or self._policy.default_strategy)
        candidates = self._lots.list_candidates(product_id, warehouse_id)
        picks = _plan_lot_picks(candidates, quantity, strategy, **self._filters())
        if picks is None:
            raise NoEligibleLotError(str(product_id), str(warehouse_id), str(quantity), strategy.value)
        return picks

"""
AllocationService -- entry point for allocation and fulfillment requests.

Responsibility:
    Wires the gatekeeper, lot selector, allocation writer, fulfillment
    orchestrator and lot adjustments together and owns the transaction:
    one public call is one unit of work, committed on success and rolled
    back on any error.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.

Allocation flow:
    allocate_inventory(order_id, product_id, quantity, warehouse_id, strategy, actor_id)
      1. Parse the strategy flag (FIFO / FEFO)
      2. Lock and validate the order line (OrderGatekeeper)
      3. Pick a lot, or a split plan when lot splitting is enabled (LotSelector)
      4. Reserve stock, insert the allocation, log RESERVE (AllocationWriter)
      5. Advance the order status (FulfillmentOrchestrator)
      6. Commit or roll back

Failure modes:
    Kernel errors never escape a public method.  They are turned into a
    result whose ``status`` names the error category and whose
    ``is_retryable`` is True only for conflicts.  Anything else is logged,
    rolled back and re-raised.

Audit relevance:
    Every call is logged with correlation_id, actor_id, the order or lot it
    targets and its duration under a bound LogContext.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fulfillment_kernel.db.types import to_quantity
from fulfillment_kernel.domain.clock import Clock, SystemClock
from fulfillment_kernel.domain.dtos import (
    ActivityEntryRecord,
    AllocationRecord,
    FulfillmentProgress,
    LotPick,
    ShipmentRecord,
)
from fulfillment_kernel.domain.lot_selection import AllocationStrategy, parse_strategy
from fulfillment_kernel.domain.policy import AllocationPolicy, FulfillmentPolicy
from fulfillment_kernel.domain.workflow import state_name
from fulfillment_kernel.exceptions import ErrorCategory, FulfillmentKernelError
from fulfillment_kernel.logging_config import LogContext, get_logger
from fulfillment_kernel.models.activity_log import AdjustmentType
from fulfillment_kernel.repositories.allocation_repository import SqlAllocationRepository
from fulfillment_kernel.repositories.base import translate_persistence_errors
from fulfillment_kernel.repositories.lot_repository import SqlInventoryLotRepository
from fulfillment_kernel.repositories.order_repository import SqlOrderRepository
from fulfillment_kernel.repositories.shipment_repository import SqlShipmentRepository
from fulfillment_kernel.services.activity_log_writer import ActivityLogWriter
from fulfillment_kernel.services.allocation_writer import AllocationWriter
from fulfillment_kernel.services.fulfillment_orchestrator import FulfillmentOrchestrator
from fulfillment_kernel.services.lot_adjustment_service import LotAdjustmentService
from fulfillment_kernel.services.lot_selector import LotSelector
from fulfillment_kernel.services.order_gatekeeper import OrderGatekeeper

logger = get_logger("services.allocation")

ResultT = TypeVar("ResultT")


class AllocationStatusCode(str, Enum):
    """Outcome of an entry-point call."""

    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    VALIDATION_FAILED = "validation_failed"
    BUSINESS_RULE_VIOLATION = "business_rule_violation"
    CONFLICT = "conflict"


_STATUS_BY_CATEGORY = {
    ErrorCategory.NOT_FOUND: AllocationStatusCode.NOT_FOUND,
    ErrorCategory.VALIDATION: AllocationStatusCode.VALIDATION_FAILED,
    ErrorCategory.BUSINESS: AllocationStatusCode.BUSINESS_RULE_VIOLATION,
    ErrorCategory.CONFLICT: AllocationStatusCode.CONFLICT,
}


@dataclass(frozen=True)
class AllocationResult:
    """Result of an allocate_inventory call."""

    status: AllocationStatusCode
    order_id: UUID
    allocations: tuple[AllocationRecord, ...] = ()
    order_status: str | None = None
    error: FulfillmentKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == AllocationStatusCode.SUCCEEDED

    @property
    def is_retryable(self) -> bool:
        return self.error is not None and self.error.is_retryable

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def allocated_quantity(self) -> Decimal:
        return sum((a.allocated_quantity for a in self.allocations), Decimal("0"))

    @property
    def allocation(self) -> AllocationRecord | None:
        return self.allocations[0] if self.allocations else None


@dataclass(frozen=True)
class FulfillmentResult:
    """Result of a fulfillment, shipment or cancellation call."""

    status: AllocationStatusCode
    order_id: UUID | None
    order_status: str | None = None
    shipments: tuple[ShipmentRecord, ...] = ()
    consumed_allocation_ids: tuple[UUID, ...] = ()
    released_allocation_ids: tuple[UUID, ...] = ()
    error: FulfillmentKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == AllocationStatusCode.SUCCEEDED

    @property
    def is_retryable(self) -> bool:
        return self.error is not None and self.error.is_retryable

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def shipment(self) -> ShipmentRecord | None:
        return self.shipments[0] if self.shipments else None


@dataclass(frozen=True)
class LotAdjustmentResult:
    """Result of an adjust_lot call."""

    status: AllocationStatusCode
    lot_id: UUID
    entry: ActivityEntryRecord | None = None
    error: FulfillmentKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.status == AllocationStatusCode.SUCCEEDED

    @property
    def is_retryable(self) -> bool:
        return self.error is not None and self.error.is_retryable

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    @property
    def on_hand_quantity(self) -> Decimal | None:
        return self.entry.new_quantity if self.entry is not None else None


class AllocationService:
    """
    Public entry points of the fulfillment kernel.

    Contract:
        Each method runs in the given session.  With ``auto_commit=True``
        (the default) it commits on success and rolls back on failure; with
        ``auto_commit=False`` the caller owns both.

    Non-goals:
        - Authorization.  Callers consult a PermissionChecker first.
        - Retrying.  A CONFLICT result tells the caller a retry may succeed.
    """

    def __init__(
        self,
        session: Session,
        allocation_policy: AllocationPolicy | None = None,
        fulfillment_policy: FulfillmentPolicy | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._allocation_policy = allocation_policy or AllocationPolicy()
        self._fulfillment_policy = fulfillment_policy or FulfillmentPolicy()

        orders = SqlOrderRepository(session)
        lots = SqlInventoryLotRepository(session)
        allocations = SqlAllocationRepository(session)
        shipments = SqlShipmentRepository(session)
        self._activity = ActivityLogWriter(session, self._clock)

        self._gatekeeper = OrderGatekeeper(orders, self._allocation_policy)
        self._selector = LotSelector(lots, self._allocation_policy, self._clock)
        self._writer = AllocationWriter(
            session,
            self._clock,
            lot_repository=lots,
            allocation_repository=allocations,
            activity_log=self._activity,
        )
        self._orchestrator = FulfillmentOrchestrator(
            session,
            self._fulfillment_policy,
            self._clock,
            order_repository=orders,
            allocation_repository=allocations,
            shipment_repository=shipments,
            allocation_writer=self._writer,
        )
        self._adjustments = LotAdjustmentService(
            session, self._clock, lot_repository=lots, activity_log=self._activity
        )
        self._shipments = shipments

    # -------------------------------------------------------------------------
    # Transaction wrapper
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        order_id: UUID | None,
        actor_id: UUID,
        work: Callable[[], ResultT],
        on_error: Callable[[FulfillmentKernelError], ResultT],
        *,
        lot_id: UUID | None = None,
        **log_fields,
    ) -> ResultT:
        with LogContext.bind(
            correlation_id=uuid4(),
            order_id=order_id,
            actor_id=actor_id,
            lot_id=lot_id,
        ):
            logger.info(f"{operation}_started", extra=log_fields)
            t0 = time.monotonic()
            try:
                result = work()
                if self._auto_commit:
                    with translate_persistence_errors(f"{operation}_commit"):
                        self._session.commit()
            except FulfillmentKernelError as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    f"{operation}_rejected",
                    extra={
                        "error_code": exc.code,
                        "error_category": exc.category.value,
                        "retryable": exc.is_retryable,
                        "duration_ms": duration_ms,
                    },
                )
                return on_error(exc)
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                f"{operation}_completed",
                extra={"duration_ms": duration_ms},
            )
            return result

    def _fulfillment_error(self, order_id: UUID | None) -> Callable[[FulfillmentKernelError], FulfillmentResult]:
        def build(exc: FulfillmentKernelError) -> FulfillmentResult:
            return FulfillmentResult(
                status=_STATUS_BY_CATEGORY[exc.category], order_id=order_id, error=exc
            )
        return build

    def _fulfillment_result(self, progress: FulfillmentProgress) -> FulfillmentResult:
        shipments = []
        for shipment_id in progress.shipment_ids:
            shipment = self._shipments.get(shipment_id)
            if shipment is not None:
                shipments.append(ShipmentRecord.from_model(shipment))
        return FulfillmentResult(
            status=AllocationStatusCode.SUCCEEDED,
            order_id=progress.order_id,
            order_status=progress.order_status,
            shipments=tuple(shipments),
            consumed_allocation_ids=progress.consumed_allocation_ids,
            released_allocation_ids=progress.released_allocation_ids,
        )

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def allocate_inventory(
        self,
        order_id: UUID,
        product_id: UUID,
        quantity: Decimal,
        warehouse_id: UUID,
        strategy: AllocationStrategy | str | None,
        actor_id: UUID,
    ) -> AllocationResult:
        """
        Reserve ``quantity`` of ``product_id`` from ``warehouse_id`` for the
        order.

        Postconditions:
            - On success, the lot reservation, allocation row(s), RESERVE
              entries and order status change are committed together.
            - On failure, nothing is written.
        """

        def work() -> AllocationResult:
            parsed = parse_strategy(strategy or self._allocation_policy.default_strategy)
            order_line = self._gatekeeper.validate_allocation_request(
                order_id, product_id, quantity, lock_order=True
            )
            requested = to_quantity(quantity)
            if self._allocation_policy.allow_lot_splitting:
                picks = self._selector.plan_lot_picks(product_id, warehouse_id, requested, parsed)
            else:
                lot = self._selector.select_lot(product_id, warehouse_id, requested, parsed)
                picks = [LotPick(lot=lot, quantity=requested)]

            allocations = []
            outstanding = requested
            for pick in picks:
                outstanding -= pick.quantity
                allocations.append(
                    self._writer.commit_allocation(
                        order_line,
                        pick.lot,
                        pick.quantity,
                        actor_id,
                        strategy=parsed.value,
                        pending_quantity=outstanding,
                    )
                )
            order_status = self._orchestrator.on_allocation_committed(order_id, actor_id)
            return AllocationResult(
                status=AllocationStatusCode.SUCCEEDED,
                order_id=order_id,
                allocations=tuple(AllocationRecord.from_model(a) for a in allocations),
                order_status=order_status,
            )

        def failed(exc: FulfillmentKernelError) -> AllocationResult:
            return AllocationResult(
                status=_STATUS_BY_CATEGORY[exc.category], order_id=order_id, error=exc
            )

        return self._run(
            "allocation",
            order_id,
            actor_id,
            work,
            failed,
            product_id=str(product_id),
            warehouse_id=str(warehouse_id),
            quantity=str(quantity),
            strategy=state_name(strategy) if strategy else None,
        )

    def settle_allocation(self, order_id: UUID, actor_id: UUID) -> FulfillmentResult:
        """End an allocation pass: ALLOCATING becomes ALLOCATED or PARTIAL."""

        def work() -> FulfillmentResult:
            status = self._orchestrator.settle_allocation(order_id, actor_id)
            return self._fulfillment_result(
                FulfillmentProgress(order_id=order_id, order_status=status)
            )

        return self._run(
            "settle_allocation", order_id, actor_id, work, self._fulfillment_error(order_id)
        )

    # -------------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------------

    def create_shipment(
        self,
        order_id: UUID,
        actor_id: UUID,
        allocation_ids: Sequence[UUID] | None = None,
        notes: str | None = None,
    ) -> FulfillmentResult:
        def work() -> FulfillmentResult:
            shipment = self._orchestrator.create_shipment(
                order_id, actor_id, allocation_ids=allocation_ids, notes=notes
            )
            return self._fulfillment_result(
                FulfillmentProgress(
                    order_id=order_id,
                    order_status=self._orchestrator.order_status(order_id),
                    shipment_ids=(shipment.id,),
                )
            )

        return self._run(
            "create_shipment",
            order_id,
            actor_id,
            work,
            self._fulfillment_error(order_id),
            allocation_count=len(allocation_ids) if allocation_ids else None,
        )

    def attach_tracking(
        self,
        shipment_id: UUID,
        tracking_number: str,
        carrier: str | None,
        actor_id: UUID,
    ) -> FulfillmentResult:
        def work() -> FulfillmentResult:
            shipment = self._orchestrator.attach_tracking(
                shipment_id, tracking_number, carrier, actor_id
            )
            return self._fulfillment_result(
                FulfillmentProgress(
                    order_id=shipment.order_id,
                    order_status=self._orchestrator.order_status(shipment.order_id),
                    shipment_ids=(shipment.id,),
                )
            )

        return self._run(
            "attach_tracking",
            None,
            actor_id,
            work,
            self._fulfillment_error(None),
            shipment_id=str(shipment_id),
            carrier=carrier,
        )

    def advance_fulfillment(
        self,
        order_id: UUID,
        target_order_status: str | None,
        target_shipment_status: str | None,
        target_fulfillment_status: str | None,
        actor_id: UUID,
        shipment_id: UUID | None = None,
    ) -> FulfillmentResult:
        """Advance order, shipment and fulfillment status in one transaction."""

        def work() -> FulfillmentResult:
            progress = self._orchestrator.advance_fulfillment(
                order_id,
                target_order_status,
                target_shipment_status,
                target_fulfillment_status,
                actor_id,
                shipment_id=shipment_id,
            )
            return self._fulfillment_result(progress)

        return self._run(
            "advance_fulfillment",
            order_id,
            actor_id,
            work,
            self._fulfillment_error(order_id),
            target_order_status=state_name(target_order_status) if target_order_status else None,
            target_shipment_status=(
                state_name(target_shipment_status) if target_shipment_status else None
            ),
            target_fulfillment_status=(
                state_name(target_fulfillment_status) if target_fulfillment_status else None
            ),
        )

    def cancel_order(
        self, order_id: UUID, actor_id: UUID, reason: str | None = None
    ) -> FulfillmentResult:
        def work() -> FulfillmentResult:
            return self._fulfillment_result(
                self._orchestrator.cancel_order(order_id, actor_id, reason=reason)
            )

        return self._run(
            "cancel_order",
            order_id,
            actor_id,
            work,
            self._fulfillment_error(order_id),
            reason=reason,
        )

    # -------------------------------------------------------------------------
    # Stock corrections
    # -------------------------------------------------------------------------

    def adjust_lot(
        self,
        lot_id: UUID,
        adjusted_quantity: Decimal,
        adjustment_type: AdjustmentType | str,
        actor_id: UUID,
        comment: str | None = None,
    ) -> LotAdjustmentResult:
        """Apply a signed on-hand correction (damaged, lost, found, recount)."""

        def work() -> LotAdjustmentResult:
            entry = self._adjustments.adjust_lot(
                lot_id, adjusted_quantity, adjustment_type, actor_id, comment=comment
            )
            return LotAdjustmentResult(
                status=AllocationStatusCode.SUCCEEDED,
                lot_id=lot_id,
                entry=ActivityEntryRecord.from_model(entry),
            )

        def failed(exc: FulfillmentKernelError) -> LotAdjustmentResult:
            return LotAdjustmentResult(
                status=_STATUS_BY_CATEGORY[exc.category], lot_id=lot_id, error=exc
            )

        return self._run(
            "adjust_lot",
            None,
            actor_id,
            work,
            failed,
            lot_id=lot_id,
            adjustment=str(adjusted_quantity),
            adjustment_type=state_name(adjustment_type) if adjustment_type else None,
        )

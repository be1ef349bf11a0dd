"""
Typed Exception Hierarchy for the Fulfillment Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the allocation core (HTTP handlers, batch jobs, UI thunks) must
react to failures precisely: a lost race is retried, a validation failure is
shown to the user, a missing order is a 404.  Parsing message strings for
that is fragile, so every failure is a typed exception that carries:

  1. a ``category`` (NOT_FOUND, VALIDATION, BUSINESS, CONFLICT)
  2. a machine-readable ``code``
  3. structured attributes (order_id, lot_id, quantities, ...)

Example:

    try:
        writer.commit_allocation(line, lot, quantity, actor_id)
    except ConflictError as e:
        # Someone else reserved the stock first -- safe to retry
        schedule_retry(e.code)
    except FulfillmentKernelError as e:
        return {"error": e.code, "category": e.category.value, "message": str(e)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FulfillmentKernelError (base)
    |
    +-- NotFoundError                         [NOT_FOUND]
    |   +-- OrderNotFoundError
    |   +-- OrderHasNoItemsError
    |   +-- NoEligibleLotError
    |   +-- LotNotFoundError
    |   +-- AllocationNotFoundError
    |   +-- ShipmentNotFoundError
    |
    +-- ValidationError                       [VALIDATION]
    |   +-- InvalidQuantityError
    |   +-- InvalidStrategyError
    |   +-- InvalidAdjustmentTypeError
    |   +-- OrderNotAllocatableError
    |   +-- OrderItemNotAllocatableError
    |   +-- ProductNotOnOrderError
    |   +-- QuantityExceedsRemainingError
    |   +-- MultipleWarehouseShipmentError
    |
    +-- ConflictError                         [CONFLICT, retryable]
    |   +-- LotQuantityConflictError
    |   +-- AllocationRaceConflictError
    |   +-- StatusConflictError
    |   +-- PersistenceConflictError
    |
    +-- BusinessRuleError                     [BUSINESS]
        +-- InvalidStatusTransitionError
        +-- FulfillmentPreconditionError
        +-- LotAdjustmentRejectedError
        +-- ActivityLogIntegrityError
        +-- ImmutabilityViolationError
        +-- PersistenceError

===============================================================================
DESIGN DECISIONS
===============================================================================

1. Category is a class attribute, like ``code``.  Middleware can map a
   category to an HTTP status or a retry policy without knowing every
   concrete class.

2. Only CONFLICT is retryable.  NOT_FOUND and VALIDATION are terminal for the
   request; BUSINESS signals a rule violation that a retry cannot fix.

3. Raw ``sqlalchemy.exc`` errors never cross the repository boundary; they are
   wrapped into PersistenceConflictError or PersistenceError.
===============================================================================
"""

from enum import Enum


class ErrorCategory(str, Enum):
    """Coarse error kind exposed across the core boundary."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    BUSINESS = "business"
    CONFLICT = "conflict"


class FulfillmentKernelError(Exception):
    """
    Base exception for all fulfillment kernel errors.

    All subclasses carry a ``code`` and a ``category`` class attribute.
    """

    code: str = "FULFILLMENT_KERNEL_ERROR"
    category: ErrorCategory = ErrorCategory.BUSINESS

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.CONFLICT

    def to_dict(self) -> dict:
        """Serialize for API responses and structured logs."""
        data = {
            "code": self.code,
            "category": self.category.value,
            "message": str(self),
            "retryable": self.is_retryable,
        }
        for key, value in vars(self).items():
            if not key.startswith("_"):
                data[key] = value
        return data


# =============================================================================
# NOT_FOUND
# =============================================================================


class NotFoundError(FulfillmentKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"
    category: ErrorCategory = ErrorCategory.NOT_FOUND


class OrderNotFoundError(NotFoundError):
    """Order with given ID does not exist."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class OrderHasNoItemsError(NotFoundError):
    """Order exists but has no line items."""

    code: str = "ORDER_HAS_NO_ITEMS"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} has no items")


class NoEligibleLotError(NotFoundError):
    """No lot in the warehouse can satisfy the requested quantity."""

    code: str = "NO_ELIGIBLE_LOT"

    def __init__(self, product_id: str, warehouse_id: str, quantity: str, strategy: str):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.quantity = quantity
        self.strategy = strategy
        super().__init__(
            f"No available inventory for product {product_id} in warehouse "
            f"{warehouse_id} covering quantity {quantity} ({strategy})"
        )


class LotNotFoundError(NotFoundError):
    """Inventory lot with given ID does not exist."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Inventory lot not found: {lot_id}")


class AllocationNotFoundError(NotFoundError):
    """Allocation(s) not found for the order."""

    code: str = "ALLOCATION_NOT_FOUND"

    def __init__(self, order_id: str, allocation_ids: list[str] | None = None):
        self.order_id = order_id
        self.allocation_ids = allocation_ids
        if allocation_ids:
            detail = f"allocations {', '.join(allocation_ids)}"
        else:
            detail = "no allocations"
        super().__init__(f"Order {order_id}: {detail} not found")


class ShipmentNotFoundError(NotFoundError):
    """Shipment with given ID does not exist."""

    code: str = "SHIPMENT_NOT_FOUND"

    def __init__(self, shipment_id: str):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment not found: {shipment_id}")


# =============================================================================
# VALIDATION
# =============================================================================


class ValidationError(FulfillmentKernelError):
    """Base exception for request validation failures."""

    code: str = "VALIDATION_ERROR"
    category: ErrorCategory = ErrorCategory.VALIDATION


class InvalidQuantityError(ValidationError):
    """Requested quantity is not a positive number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: str, reason: str | None = None):
        self.quantity = quantity
        self.reason = reason
        super().__init__(
            f"Invalid quantity {quantity}: {reason}"
            if reason
            else f"Quantity must be a positive number greater than zero, got {quantity}"
        )


class InvalidStrategyError(ValidationError):
    """Allocation strategy is not FIFO or FEFO."""

    code: str = "INVALID_STRATEGY"

    def __init__(self, strategy: str):
        self.strategy = strategy
        super().__init__(f"Unknown allocation strategy: {strategy!r}")


class InvalidAdjustmentTypeError(ValidationError):
    """Lot adjustment type is unknown or does not allow the adjustment's direction."""

    code: str = "INVALID_ADJUSTMENT_TYPE"

    def __init__(self, adjustment_type: str, reason: str | None = None):
        self.adjustment_type = adjustment_type
        self.reason = reason
        super().__init__(
            f"Adjustment type {adjustment_type!r}: {reason}"
            if reason
            else f"Unknown lot adjustment type: {adjustment_type!r}"
        )


class OrderNotAllocatableError(ValidationError):
    """Order status does not permit allocation."""

    code: str = "ORDER_NOT_ALLOCATABLE"

    def __init__(self, order_id: str, status: str, allowed: list[str]):
        self.order_id = order_id
        self.status = status
        self.allowed = allowed
        super().__init__(
            f"Order {order_id} must be in one of {allowed} before allocation. "
            f"Current: {status}"
        )


class OrderItemNotAllocatableError(ValidationError):
    """Order item status does not permit allocation."""

    code: str = "ORDER_ITEM_NOT_ALLOCATABLE"

    def __init__(self, order_item_id: str, status: str):
        self.order_item_id = order_item_id
        self.status = status
        super().__init__(
            f"Order item {order_item_id} is not allocatable. Current status: {status}"
        )


class ProductNotOnOrderError(ValidationError):
    """Requested product is not part of the order."""

    code: str = "PRODUCT_NOT_ON_ORDER"

    def __init__(self, order_id: str, product_id: str):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(f"Product {product_id} is not part of order {order_id}")


class QuantityExceedsRemainingError(ValidationError):
    """Requested quantity exceeds ordered minus already-allocated."""

    code: str = "QUANTITY_EXCEEDS_REMAINING"

    def __init__(
        self,
        order_item_id: str,
        requested: str,
        quantity_ordered: str,
        quantity_allocated: str,
    ):
        self.order_item_id = order_item_id
        self.requested = requested
        self.quantity_ordered = quantity_ordered
        self.quantity_allocated = quantity_allocated
        super().__init__(
            f"Requested quantity ({requested}) exceeds remaining quantity for "
            f"order item {order_item_id} (ordered={quantity_ordered}, "
            f"allocated={quantity_allocated})"
        )


class MultipleWarehouseShipmentError(ValidationError):
    """Allocations for one shipment span more than one warehouse."""

    code: str = "MULTIPLE_WAREHOUSE_SHIPMENT"

    def __init__(self, order_id: str, warehouse_ids: list[str]):
        self.order_id = order_id
        self.warehouse_ids = warehouse_ids
        super().__init__(
            f"Allocations for order {order_id} span multiple warehouses "
            f"{warehouse_ids}. Split fulfillment per warehouse."
        )


# =============================================================================
# CONFLICT
# =============================================================================


class ConflictError(FulfillmentKernelError):
    """Base exception for lost concurrency races.  Safe to retry."""

    code: str = "CONFLICT"
    category: ErrorCategory = ErrorCategory.CONFLICT


class LotQuantityConflictError(ConflictError):
    """The conditional lot update matched no row: another writer got there first."""

    code: str = "LOT_QUANTITY_CONFLICT"

    def __init__(self, lot_id: str, requested: str, operation: str = "reserve"):
        self.lot_id = lot_id
        self.requested = requested
        self.operation = operation
        super().__init__(
            f"Concurrent update on lot {lot_id}: could not {operation} {requested}"
        )


class AllocationRaceConflictError(ConflictError):
    """A concurrent allocation consumed the order item's remaining quantity."""

    code: str = "ALLOCATION_RACE_CONFLICT"

    def __init__(self, order_item_id: str, requested: str, remaining: str):
        self.order_item_id = order_item_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Order item {order_item_id} was allocated concurrently: "
            f"requested {requested}, remaining {remaining}"
        )


class StatusConflictError(ConflictError):
    """Status compare-and-set lost against a concurrent writer."""

    code: str = "STATUS_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_status = expected_status
        super().__init__(
            f"{entity_type} {entity_id} is no longer in status {expected_status}"
        )


class PersistenceConflictError(ConflictError):
    """Database lock, deadlock or serialization failure."""

    code: str = "PERSISTENCE_CONFLICT"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Database conflict during {operation}: {detail}")


# =============================================================================
# BUSINESS
# =============================================================================


class BusinessRuleError(FulfillmentKernelError):
    """Base exception for higher-level rule violations."""

    code: str = "BUSINESS_RULE_VIOLATION"
    category: ErrorCategory = ErrorCategory.BUSINESS


class InvalidStatusTransitionError(BusinessRuleError):
    """Requested status transition is not in the workflow."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, workflow: str, from_status: str, to_status: str):
        self.workflow = workflow
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {workflow} transition: {from_status} -> {to_status}"
        )


class FulfillmentPreconditionError(BusinessRuleError):
    """Fulfillment step attempted before its preconditions hold."""

    code: str = "FULFILLMENT_PRECONDITION_FAILED"

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Order {order_id}: {reason}")


class LotAdjustmentRejectedError(BusinessRuleError):
    """A manual adjustment would leave less on hand than is reserved."""

    code: str = "LOT_ADJUSTMENT_REJECTED"

    def __init__(self, lot_id: str, adjustment: str, available: str):
        self.lot_id = lot_id
        self.adjustment = adjustment
        self.available = available
        super().__init__(
            f"Lot {lot_id}: adjustment {adjustment} exceeds the {available} units "
            "not held by reservations"
        )


class ActivityLogIntegrityError(BusinessRuleError):
    """Activity log arithmetic, checksum or continuity check failed."""

    code: str = "ACTIVITY_LOG_INTEGRITY"

    def __init__(self, entry_id: str, reason: str):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Activity log entry {entry_id} failed integrity check: {reason}")


class ImmutabilityViolationError(BusinessRuleError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class PersistenceError(BusinessRuleError):
    """Non-retryable database failure, wrapped at the repository boundary."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Database error during {operation}: {detail}")

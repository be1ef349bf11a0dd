"""
ORM-Level Immutability Enforcement for append-only inventory records.

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock movements must be auditable after the fact.  An allocation's quantity,
or an activity log row, that can be silently edited makes the audit trail
worthless: corrections must be new compensating rows, never mutations.

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | What is frozen                       | Mutable
-----------------------|--------------------------------------|--------------------
InventoryActivityLog   | Everything, always                   | nothing
InventoryAllocation    | References and allocated_quantity    | status, updated_*
ShipmentBatch          | Everything, always                   | nothing

None of these rows may ever be deleted.

Bulk UPDATE/DELETE statements bypass mapper events; the kernel never issues
them against these tables.
===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from fulfillment_kernel.exceptions import ImmutabilityViolationError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns on an allocation that may change after INSERT
_ALLOCATION_MUTABLE_FIELDS = frozenset({"status", "updated_at", "updated_by_id"})


def _block(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_activity_log_immutability(mapper, connection, target):
    """Activity log entries are never updated."""
    from fulfillment_kernel.models.activity_log import InventoryActivityLog

    if not isinstance(target, InventoryActivityLog):
        return

    _block(
        "InventoryActivityLog",
        str(target.id),
        "UPDATE",
        "Activity log entries are immutable and cannot be modified",
    )


def _check_activity_log_delete(mapper, connection, target):
    """Activity log entries are never deleted."""
    from fulfillment_kernel.models.activity_log import InventoryActivityLog

    if not isinstance(target, InventoryActivityLog):
        return

    _block(
        "InventoryActivityLog",
        str(target.id),
        "DELETE",
        "Activity log entries cannot be deleted",
    )


def _check_allocation_immutability(mapper, connection, target):
    """
    Only status (and its audit metadata) may change on an allocation.
    """
    from fulfillment_kernel.models.allocation import InventoryAllocation

    if not isinstance(target, InventoryAllocation):
        return

    changed = []
    for attr in inspect(target).mapper.column_attrs:
        if attr.key in _ALLOCATION_MUTABLE_FIELDS:
            continue
        if get_history(target, attr.key).has_changes():
            changed.append(attr.key)

    if changed:
        _block(
            "InventoryAllocation",
            str(target.id),
            "UPDATE",
            f"Allocation fields are frozen after creation: {', '.join(sorted(changed))}. "
            "Release the allocation and create a new one instead.",
        )


def _check_allocation_delete(mapper, connection, target):
    """Allocations are never deleted; they are released."""
    from fulfillment_kernel.models.allocation import InventoryAllocation

    if not isinstance(target, InventoryAllocation):
        return

    _block(
        "InventoryAllocation",
        str(target.id),
        "DELETE",
        "Allocations cannot be deleted; release them instead",
    )


def _check_shipment_batch_immutability(mapper, connection, target):
    """Shipment batches are never updated."""
    from fulfillment_kernel.models.shipment import ShipmentBatch

    if not isinstance(target, ShipmentBatch):
        return

    _block(
        "ShipmentBatch",
        str(target.id),
        "UPDATE",
        "Shipment batches are immutable and cannot be modified",
    )


def _check_shipment_batch_delete(mapper, connection, target):
    """Shipment batches are never deleted."""
    from fulfillment_kernel.models.shipment import ShipmentBatch

    if not isinstance(target, ShipmentBatch):
        return

    _block(
        "ShipmentBatch",
        str(target.id),
        "DELETE",
        "Shipment batches cannot be deleted",
    )


def _listener_table():
    from fulfillment_kernel.models.activity_log import InventoryActivityLog
    from fulfillment_kernel.models.allocation import InventoryAllocation
    from fulfillment_kernel.models.shipment import ShipmentBatch

    return [
        (InventoryActivityLog, "before_update", _check_activity_log_immutability),
        (InventoryActivityLog, "before_delete", _check_activity_log_delete),
        (InventoryAllocation, "before_update", _check_allocation_immutability),
        (InventoryAllocation, "before_delete", _check_allocation_delete),
        (ShipmentBatch, "before_update", _check_shipment_batch_immutability),
        (ShipmentBatch, "before_delete", _check_shipment_batch_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once during application initialization, after models are imported
    and before any database work.  Safe to call more than once.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally tamper with rows to
    verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")

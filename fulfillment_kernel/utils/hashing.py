"""
Deterministic hashing utilities.

All hashing in the fulfillment kernel must be deterministic and reproducible
across backends.  SQLite hands back naive datetimes and Decimals padded to
the column scale, PostgreSQL hands back aware datetimes; the canonical forms
below make a checksum computed at write time match one recomputed from a
row read back from either database.
"""

import hashlib
import json
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from fulfillment_kernel.db.types import quantity_str


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return quantity_str(obj)
    if isinstance(obj, datetime):
        return canonical_timestamp(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_timestamp(value: datetime) -> str:
    """UTC timestamp with microseconds; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, there is no whitespace, and Decimal, datetime and UUID
    values use the canonical forms above.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 (64 characters) of the canonical JSON payload."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def compute_activity_checksum(
    entity_id: UUID | str,
    previous_quantity: Decimal,
    new_quantity: Decimal,
    occurred_at: datetime,
    actor_id: UUID | str,
) -> str:
    """
    Checksum binding an activity log entry to its key fields.

    Any change to the lot reference, either quantity, the timestamp or the
    actor produces a different hash.
    """
    return hash_payload({
        "entity_id": str(entity_id),
        "previous_quantity": Decimal(previous_quantity),
        "new_quantity": Decimal(new_quantity),
        "occurred_at": occurred_at,
        "actor_id": str(actor_id),
    })

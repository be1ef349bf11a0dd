"""Database layer - engine, base classes, types, and immutability listeners."""

from fulfillment_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from fulfillment_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from fulfillment_kernel.db.types import PayloadHash, Quantity, to_quantity

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Quantity",
    "PayloadHash",
    "to_quantity",
]

"""
Module: fulfillment_kernel.db.types
Responsibility: Annotated type aliases and conversion helpers for stock
    quantity columns.  Centralizes precision so every model and service uses
    identical quantity definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, repositories/ and selectors/.

Invariants enforced:
    - No floats anywhere in the kernel.  All quantities use Decimal with
      QUANTITY_DECIMAL_PLACES of precision; to_quantity() rejects floats.
"""

from decimal import Context, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

from fulfillment_kernel.exceptions import InvalidQuantityError

# Stock quantity: 38 digits total, 9 decimal places
Quantity = Annotated[Decimal, Numeric(38, 9)]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

# Short identifier strings (status values, lot numbers, carrier codes)
ShortCode = Annotated[str, String(50)]

# Long text for comments and notes
LongText = Annotated[str, String(4000)]

QUANTITY_DECIMAL_PLACES = 9

_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)

# Numeric(38, 9): quantize traps anything needing more than 38 digits
_QUANTITY_CONTEXT = Context(prec=38, traps=[InvalidOperation])

ZERO = Decimal("0")


def to_quantity(value: Decimal | int | str) -> Decimal:
    """
    Convert a caller-supplied value to a finite Decimal quantity that the
    quantity columns store exactly.

    Raises:
        InvalidQuantityError: for floats, booleans, non-numeric strings,
            NaN and infinities, and for values with more than
            QUANTITY_DECIMAL_PLACES decimal places or more digits than the
            column holds.
    """
    if isinstance(value, (bool, float)):
        raise InvalidQuantityError(repr(value))
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidQuantityError(repr(value))
    if not result.is_finite():
        raise InvalidQuantityError(repr(value))
    try:
        stored = result.quantize(_QUANTUM, context=_QUANTITY_CONTEXT)
    except InvalidOperation:
        raise InvalidQuantityError(repr(value), "too many digits for a stock quantity")
    if stored != result:
        raise InvalidQuantityError(
            repr(value), f"more than {QUANTITY_DECIMAL_PLACES} decimal places"
        )
    return result


def quantity_str(value: Decimal) -> str:
    """Canonical string form (no exponent, trailing zeros stripped)."""
    if value == 0:
        return "0"
    normalized = value.normalize()
    return format(normalized, "f")

"""
Module: fulfillment_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    the DTOs in domain/dtos.py.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, flush, commit or delete.
    - Selectors return frozen DTOs, not ORM instances.
    - The caller owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Non-goals:
        - BaseSelector defines no queries; subclasses do.
    """

    def __init__(self, session: Session):
        self.session = session

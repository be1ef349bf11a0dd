"""
BaseService -- abstract base for kernel services that write.

Responsibility:
    Holds the caller's SQLAlchemy ``Session``.  Services persist through
    ``session.flush()`` and never commit or roll back; the entry point
    (``AllocationService``) or the test harness owns the transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``, so several services can take part in one
          atomic allocation or fulfillment step.

    Non-goals:
        - Read-only queries belong in ``fulfillment_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

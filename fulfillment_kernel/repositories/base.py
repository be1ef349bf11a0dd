"""
Module: fulfillment_kernel.repositories.base
Responsibility: Common base for the SQLAlchemy adapters that implement the
    ports in domain/ports.py, plus the persistence error boundary.
Architecture position: Kernel > Repositories.  May import from db/, models/,
    domain/ and exceptions.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - No raw ``sqlalchemy.exc`` error crosses a repository method.  Lock
      timeouts, deadlocks, serialization failures and constraint races
      become PersistenceConflictError (retryable); anything else becomes
      PersistenceError.
    - Repositories flush, they never commit or roll back.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generator, Generic, TypeVar
from uuid import UUID

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment_kernel.db.base import Base
from fulfillment_kernel.exceptions import (
    FulfillmentKernelError,
    PersistenceConflictError,
    PersistenceError,
)
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("repositories")

ModelType = TypeVar("ModelType", bound=Base)


def _describe(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc).splitlines()[0]


@contextmanager
def translate_persistence_errors(operation: str) -> Generator[None, None, None]:
    """Wrap database errors raised inside the block into kernel errors."""
    try:
        yield
    except FulfillmentKernelError:
        raise
    except (OperationalError, IntegrityError) as exc:
        logger.warning(
            "persistence_conflict",
            extra={"operation": operation, "db_error": type(exc).__name__},
        )
        raise PersistenceConflictError(operation, _describe(exc)) from exc
    except SQLAlchemyError as exc:
        logger.error(
            "persistence_error",
            extra={"operation": operation, "db_error": type(exc).__name__},
        )
        raise PersistenceError(operation, _describe(exc)) from exc


class BaseRepository(ABC, Generic[ModelType]):
    """
    Abstract base for SQLAlchemy repository adapters.

    Subclasses set ``model``.  The caller owns the session and its
    transaction.
    """

    model: type[ModelType]

    def __init__(self, session: Session):
        self.session = session

    def get(self, entity_id: UUID) -> ModelType | None:
        with translate_persistence_errors(f"get_{self.model.__tablename__}"):
            return self.session.get(self.model, entity_id)

    def add(self, entity: ModelType) -> ModelType:
        with translate_persistence_errors(f"add_{self.model.__tablename__}"):
            self.session.add(entity)
            self.session.flush()
        return entity

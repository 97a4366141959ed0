# backend/core/database_utils.py

from contextlib import asynccontextmanager, contextmanager
from typing import AsyncGenerator, Iterator
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .database import SessionLocal
from .exceptions import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[Session, None]:
    """
    Async context manager for database sessions.
    Use this for background tasks and non-request contexts.

    Example:
        async with get_db_context() as db:
            # Use db session
            pass
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block as one atomic unit against the backing store.

    Commits on success. Any exception rolls the whole unit back; driver and
    ORM failures are re-raised as ``StoreUnavailableError`` so callers see a
    generic, retry-safe error instead of a half-applied change.

    Example:
        with transaction(db):
            table.status = TableStatus.OCCUPIED
            db.add(session)
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Transaction aborted by constraint violation: {e.orig}")
        raise ConflictError(
            "Conflicting change detected, reload and retry",
            error_code="INTEGRITY_CONFLICT",
        ) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction aborted by storage error: {e}")
        raise StoreUnavailableError() from e
    except Exception:
        db.rollback()
        raise

"""
Module: asset_kernel.db.transaction
Responsibility: The commit-or-rollback boundary used by every state-changing
    workflow operation, and translation of storage failures into the typed
    TransactionError / LockTimeoutError kinds.
Architecture position: Kernel > DB.  Imported by module services, which own
    their transaction boundary (commit on success, rollback on failure).

Invariants enforced:
    - All-or-nothing: on any exception the session is rolled back before the
      exception leaves the boundary.  No partial requisition / asset / ticket
      / history state survives a failed operation.
    - Domain errors (AssetWorkflowError) propagate unchanged.
    - SQLAlchemy errors never leak to callers; they become TransactionError
      (retryable) or LockTimeoutError when a lock wait expired.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_kernel.exceptions import (
    AssetWorkflowError,
    LockTimeoutError,
    TransactionError,
)
from asset_kernel.logging_config import get_logger

logger = get_logger("db.transaction")

# PostgreSQL SQLSTATEs for lock_not_available and query_canceled
_LOCK_TIMEOUT_SQLSTATES = frozenset({"55P03", "57014"})


def is_lock_timeout(exc: DBAPIError) -> bool:
    """Return True if a DBAPI error reports an expired lock wait."""
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _LOCK_TIMEOUT_SQLSTATES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return "database is locked" in message or "lock timeout" in message


@contextmanager
def atomic(session: Session, operation: str) -> Iterator[Session]:
    """
    Run a block as one transaction on ``session``.

    Postconditions: On normal exit the session is committed.  On any
        exception the session is rolled back and the error is re-raised,
        translated when it came from the storage layer.

    Raises:
        AssetWorkflowError: Unchanged, after rollback.
        LockTimeoutError: A lock could not be acquired in time.
        TransactionError: Any other storage failure (retryable).
    """
    try:
        yield session
        session.commit()
    except AssetWorkflowError as exc:
        session.rollback()
        logger.warning(
            "transaction_rolled_back",
            extra={"operation": operation, "error_code": exc.code},
        )
        raise
    except OperationalError as exc:
        session.rollback()
        if is_lock_timeout(exc):
            logger.warning(
                "transaction_lock_timeout",
                extra={"operation": operation},
            )
            raise LockTimeoutError(operation, str(exc.orig)) from exc
        logger.error(
            "transaction_failed",
            extra={"operation": operation},
            exc_info=True,
        )
        raise TransactionError(operation, str(exc.orig)) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(
            "transaction_failed",
            extra={"operation": operation},
            exc_info=True,
        )
        raise TransactionError(operation, str(exc)) from exc
    except Exception:
        session.rollback()
        raise

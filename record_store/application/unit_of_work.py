from typing import Callable, Optional, TypeVar
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from shared.core import get_logger
from record_store.domain import messages
from record_store.domain.exceptions import ConflictError, InternalError, RecordStoreError

logger = get_logger(__name__)

T = TypeVar("T")

def run_atomically(
    db: Session,
    unit: Callable[[], T],
    attempts: int,
    description: str,
    on_integrity_error: Optional[Callable[[IntegrityError], RecordStoreError]] = None,
) -> T:
    """Run ``unit`` and commit, as one transaction.

    ``unit`` must re-read every row it writes: a versioned row changed by
    another transaction since it was read fails the flush with
    ``StaleDataError``, the transaction is rolled back and ``unit`` runs
    again, at most ``attempts`` times before a ``ConflictError``.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            result = unit()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning(f"Concurrent write during {description} (attempt {attempt}/{attempts})")
        except RecordStoreError:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            if on_integrity_error is not None:
                raise on_integrity_error(e) from e
            raise ConflictError(messages.STOCK_CONFLICT, operation=description) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Database error during {description}: {e}", exc_info=True)
            raise InternalError(messages.INTERNAL_SERVER, operation=description) from e
    raise ConflictError(messages.STOCK_CONFLICT, operation=description, attempts=attempts)

from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ErrorKind, Result
from .logging_config import get_logger
from .notifications import Notification, dispatch

logger = get_logger(__name__)

PENDING_INDEXES = {
    "uq_club_join_requests_pending_user": "club_join_requests",
    "uq_integration_requests_pending_pair": "entity_integration_requests",
}


def _is_pending_conflict(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if any(index in message for index in PENDING_INDEXES):
        return True
    # SQLite names the columns, not the index
    if "UNIQUE constraint failed" not in message:
        return False
    return any(f"{table}." in message for table in PENDING_INDEXES.values())


def transactional(method):
    """Run a mutating operation as one transaction on the caller's session.

    The wrapped method receives ``(self, db, outbox, *args)`` and returns a
    Result. A failed Result rolls back; a successful one commits and then
    delivers whatever the method queued in ``outbox``. Storage errors become
    DUPLICATE_PENDING (pending-row unique index) or PERSISTENCE_FAILURE; any
    other exception rolls back and propagates.
    """

    @wraps(method)
    def wrapper(self, db: Session, *args, **kwargs) -> Result:
        outbox: list[Notification] = []
        try:
            result = method(self, db, outbox, *args, **kwargs)
            if not result.ok:
                db.rollback()
                logger.info("%s refused: %s", method.__name__, result.error.message)
                return result
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if _is_pending_conflict(exc):
                logger.info("%s refused: concurrent pending request", method.__name__)
                return Result.fail(ErrorKind.DUPLICATE_PENDING, "A pending request already exists")
            logger.error("%s aborted", method.__name__, exc_info=True)
            return Result.fail(ErrorKind.PERSISTENCE_FAILURE, "Transaction aborted", cause=exc)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("%s aborted", method.__name__, exc_info=True)
            return Result.fail(ErrorKind.PERSISTENCE_FAILURE, "Transaction aborted", cause=exc)
        except Exception:
            db.rollback()
            logger.error("%s aborted", method.__name__, exc_info=True)
            raise

        dispatch(self.notifier, outbox)
        return result

    return wrapper

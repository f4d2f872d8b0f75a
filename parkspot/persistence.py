# parkspot/persistence.py
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from parkspot.errors import BackendError, ConflictError

log = logging.getLogger(__name__)


def commit(session, what):
    """
    Commit the current unit of work.

    A version mismatch on a booking row becomes ``ConflictError``; any other
    database failure is logged with its cause and re-raised as a generic
    ``BackendError``. The session is rolled back in both cases.
    """
    try:
        session.commit()
    except StaleDataError as e:
        session.rollback()
        log.warning(f"Concurrent update lost while trying to {what}: {e}")
        raise ConflictError() from e
    except SQLAlchemyError as e:
        session.rollback()
        log.exception(f"Database error while trying to {what}")
        raise BackendError() from e


def run_query(session, what, query_fn):
    try:
        return query_fn()
    except SQLAlchemyError as e:
        session.rollback()
        log.exception(f"Database error while trying to {what}")
        raise BackendError() from e

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import Unavailable

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


@contextmanager
def unit_of_work(db: Session):
    """Commit everything done in the block, or roll all of it back.

    Storage errors surface as Unavailable; any other exception is re-raised
    after the rollback.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Scheduling transaction rolled back after a storage failure')
        raise Unavailable(DATABASE_UNAVAILABLE_DETAIL) from exc
    except Exception:
        db.rollback()
        raise

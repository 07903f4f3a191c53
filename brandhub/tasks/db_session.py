"""
Database session scope for Celery tasks
"""
import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.orm import Session

from brandhub.db.database import SessionLocal, get_engine

logger = logging.getLogger(__name__)


@contextmanager
def get_celery_db_session() -> Generator[Session, None, None]:
    """
    One session per task run, always closed.

    Usage:
        with get_celery_db_session() as db:
            AutomationRegistry(db).get_due_schedules()
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        logger.error(f"Database error in Celery task, rolling back: {e}")
        db.rollback()
        raise
    finally:
        db.close()

"""
Database engine and session management
"""
import logging
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from brandhub.core.config import get_settings

logger = logging.getLogger(__name__)

Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Create the engine on first use from DATABASE_URL"""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        SessionLocal.configure(bind=_engine)
        logger.info("Database engine initialized")
    return _engine


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a session per request"""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create any missing tables"""
    # Import models so they register on Base.metadata
    from brandhub.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())

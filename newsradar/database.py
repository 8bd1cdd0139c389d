import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from newsradar.config import settings

logger = logging.getLogger(__name__)

# Base class for all ORM models
Base = declarative_base()

# One pool per process, created on first use and disposed on shutdown
_engine: Optional[Engine] = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def get_engine() -> Engine:
    """Return the process-wide engine, creating it (and its pool) on the first call."""
    global _engine
    if _engine is not None:
        return _engine

    url = settings.database_url
    if url.startswith("sqlite"):
        # SQLite connections are shared across FastAPI's worker threads
        _engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        _engine = create_engine(
            url,
            pool_size=settings.db_pool_size,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
        )
    SessionLocal.configure(bind=_engine)
    logger.info("Database connection pool created")
    return _engine


def dispose_engine() -> None:
    """Close every pooled connection. Called once from the app lifespan on shutdown."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database connection pool closed")


def get_db():
    """FastAPI dependency that provides a DB session and ensures it's closed after use."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

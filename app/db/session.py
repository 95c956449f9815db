from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from contextlib import contextmanager
from typing import TypeVar

from loguru import logger
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.config.settings import settings
from app.core.retry import with_retry
from app.db.models import Base

T = TypeVar("T")

# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def build_engine(database_url: str) -> Engine:
    """Create an engine with connection arguments suited to the backend."""
    is_sqlite = "sqlite" in database_url.lower()
    if is_sqlite:
        logger.warning("Using SQLite database (local development only)")
        connect_args: dict[str, object] = {"check_same_thread": False}
    else:
        logger.info("Using PostgreSQL database")
        connect_args = {
            "connect_timeout": 10,
            "application_name": "kettlebell-coach",
        }

    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=False,
        pool_pre_ping=True,  # Verify connections before using (important for cloud DBs)
        pool_recycle=3600,
    )


def get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings.database_url)
        logger.info("Database engine initialized")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Get or create the session factory bound to the default engine."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def create_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified")


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Transactional scope: commit on success, roll back and re-raise on failure."""
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        logger.debug("Rolling back database session")
        session.rollback()
        raise
    finally:
        session.close()


async def run_in_thread(func: Callable[..., T], *args: object) -> T:
    """Run a blocking persistence call off the event loop, retrying transient failures."""
    return await with_retry(
        lambda: asyncio.to_thread(func, *args),
        initial_delay=settings.retry_initial_delay_seconds,
        backoff_factor=settings.retry_backoff_factor,
        operation_name=getattr(func, "__name__", "database operation").lstrip("_"),
    )

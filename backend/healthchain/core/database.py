"""
Database connection and session management.

Provides SQLAlchemy engine, session factory, and dependency injection
for database sessions in FastAPI endpoints. Also handles first-run
database creation and connection retry at startup.
"""

import logging
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import settings


logger = logging.getLogger(__name__)


# =============================================================================
# SQLAlchemy Base
# =============================================================================

Base = declarative_base()


# =============================================================================
# Engine Configuration
# =============================================================================

def get_engine_url() -> str:
    """Return the configured database URL."""
    return settings.database_url


engine = create_engine(
    get_engine_url(),
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    poolclass=QueuePool,
    pool_pre_ping=True,
    pool_recycle=settings.db_pool_recycle,
    pool_timeout=settings.db_pool_timeout,
    echo=settings.debug,
)


# =============================================================================
# Session Factory
# =============================================================================

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


# =============================================================================
# Event Listeners for Connection Management
# =============================================================================

@event.listens_for(engine, "connect")
def set_connection_settings(dbapi_connection, connection_record):
    """Set timezone and statement timeout on every new connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("SET timezone='UTC'")
    cursor.execute(f"SET statement_timeout = '{settings.db_statement_timeout}'")
    cursor.close()


# =============================================================================
# Dependency Injection
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database session injection.

    Creates a new session for each request and ensures proper cleanup.

    Yields:
        SQLAlchemy Session instance

    Example:
        @router.get("/api/patients")
        def list_patients(db: Session = Depends(get_db)):
            return db.query(Patient).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# First-Run Database Creation
# =============================================================================

def ensure_database_exists(url: str | None = None) -> bool:
    """
    Create the target database when it does not exist yet.

    Connects to the ``postgres`` maintenance database with the same
    credentials, checks ``pg_database`` and issues ``CREATE DATABASE``.

    Returns:
        True if the database was created, False if it already existed
    """
    target = make_url(url or get_engine_url())
    if not target.drivername.startswith("postgresql"):
        return False

    admin_engine = create_engine(
        target.set(database="postgres"),
        isolation_level="AUTOCOMMIT",
        poolclass=QueuePool,
        pool_size=1,
        max_overflow=0,
    )
    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": target.database},
            ).scalar()
            if exists:
                return False
            # Identifiers cannot be bound as parameters
            conn.execute(text(f'CREATE DATABASE "{target.database}"'))
            logger.info(f"Created database {target.database}")
            return True
    finally:
        admin_engine.dispose()


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(settings.db_connect_retries),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def wait_for_database() -> None:
    """
    Block until the database accepts connections.

    Retries with exponential backoff; on a connection failure the database is
    created first when ``db_auto_create`` is enabled.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError:
        if settings.db_auto_create and ensure_database_exists():
            engine.dispose()
        raise


# =============================================================================
# Database Utilities
# =============================================================================

def init_db() -> None:
    """
    Initialize database tables.

    Creates all tables defined in models. Production deployments should
    manage schema changes with migrations.
    """
    from .. import models  # noqa: F401  registers every model on Base

    Base.metadata.create_all(bind=engine)


def check_db_connection() -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except OperationalError as e:
        logger.error(f"Database connection check failed: {e}")
        return False

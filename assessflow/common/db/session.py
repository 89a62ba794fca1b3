"""
Database Session Management

This module provides SQLAlchemy engine creation and transactional session
management for the assessment stores.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from assessflow.common.error_handling import AssessflowError, DatabaseError
from assessflow.common.logger import app_logger

# Set up logging
logger = app_logger.getChild("db.session")


def get_engine_kwargs(database_url: str, pool_size: int = 5, max_overflow: int = 10,
                      pool_timeout: int = 30, echo: bool = False) -> Dict[str, Any]:
    """
    Get engine keyword arguments based on database type.
    Different databases support different connection options.
    """
    kwargs: Dict[str, Any] = {"echo": echo, "future": True}

    if database_url.startswith("postgresql"):
        kwargs.update({
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        })
    elif database_url.startswith("sqlite"):
        # Sessions are used from request threads and from deadline timer threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection keeps the in-memory database alive
            kwargs["poolclass"] = StaticPool

    return kwargs


def create_database_engine(database_url: str, **options: Any) -> Engine:
    """
    Create a synchronous engine for the given URL.

    Foreign keys are switched on for SQLite so question rows cascade with
    their assessment as they do on PostgreSQL.
    """
    engine = create_engine(database_url, **get_engine_kwargs(database_url, **options))

    if database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info(f"Created database engine for {engine.url.get_backend_name()}")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory used by the repositories."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False,
                        expire_on_commit=False, future=True)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional scope around a series of operations.

    Commits when the block exits normally and rolls back on any exception.
    Raw SQLAlchemy failures are re-raised as DatabaseError; domain errors
    propagate unchanged.

    Example:
        with session_scope(factory) as session:
            session.add(row)
    """
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except AssessflowError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database session error: {e}")
        raise DatabaseError("Database operation failed", cause=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine(engine: Optional[Engine]) -> None:
    """Dispose of an engine's connection pool."""
    if engine is not None:
        engine.dispose()
        logger.info("Database engine disposed")

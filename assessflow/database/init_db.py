"""
Database initialization and connection management.

This module provides functions for:
1. Creating the engine and session factory
2. Initializing the database schema
3. Running Alembic migrations
4. Closing the engine
"""

import os
from typing import Optional, Tuple

from alembic import command
from alembic.config import Config
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from assessflow.common.db import create_database_engine, create_session_factory, dispose_engine
from assessflow.common.logger import app_logger
from assessflow.database.base import Base

# Make sure every model is registered on the metadata
import assessflow.assessments.database_models  # noqa: F401

# Setup module logger
logger = app_logger.getChild("database.init_db")

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "alembic")


def initialize_database(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    create_tables: bool = True,
) -> Tuple[Engine, sessionmaker]:
    """
    Initialize the database engine and session factory.

    Args:
        database_url: Database connection URL
        echo: Whether to echo SQL statements
        pool_size: Connection pool size
        max_overflow: Maximum number of connections to allow above pool_size
        pool_timeout: Timeout for getting a connection from the pool
        create_tables: Create any missing tables from the model metadata

    Returns:
        Tuple of (engine, session factory)
    """
    try:
        logger.info(f"Initializing database with URL: {database_url[:10]}... and pool size: {pool_size}")

        engine = create_database_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            echo=echo,
        )

        # Test connection
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

        if create_tables:
            Base.metadata.create_all(engine)

        logger.info("Database engine initialized successfully")
        return engine, create_session_factory(engine)

    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise


def close_database(engine: Optional[Engine]) -> None:
    """Close the database engine and all connections."""
    try:
        dispose_engine(engine)
    except Exception as e:
        logger.error(f"Error closing database engine: {str(e)}")
        raise


def get_alembic_config(database_url: str) -> Config:
    """Alembic configuration pointing at the bundled migration scripts."""
    config = Config()
    config.set_main_option("script_location", MIGRATIONS_DIR)
    config.set_main_option("sqlalchemy.url", database_url)
    return config


def run_migrations(database_url: str, revision: str = "head") -> None:
    """
    Upgrade the database schema with Alembic.

    Args:
        database_url: Database connection URL
        revision: Target revision
    """
    logger.info(f"Running migrations up to {revision}")
    command.upgrade(get_alembic_config(database_url), revision)

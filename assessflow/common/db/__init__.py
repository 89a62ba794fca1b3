"""
Database Module

This package provides engine creation and transactional session handling
for the assessment stores.
"""

from assessflow.common.db.session import (
    create_database_engine,
    create_session_factory,
    dispose_engine,
    get_engine_kwargs,
    session_scope,
    Session,
)

__all__ = [
    'create_database_engine',
    'create_session_factory',
    'dispose_engine',
    'get_engine_kwargs',
    'session_scope',
    'Session',
]

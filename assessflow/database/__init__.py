"""
Database Module

This module provides database configuration and models for the Assessflow backend.
"""

from assessflow.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']

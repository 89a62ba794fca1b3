"""
Declarative base shared by the staging, live and result tables.

Constraint and index names come from a fixed naming convention so that the
Alembic revision and ``Base.metadata.create_all`` produce the same names.
"""

from typing import Any, Dict, Iterable

from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)
Base = declarative_base(metadata=metadata)


class ModelBase(Base):
    __abstract__ = True

    def to_dict(self, exclude: Iterable[str] = ()) -> Dict[str, Any]:
        """Column values keyed by column name, minus ``exclude``."""
        skipped = set(exclude)
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
            if column.name not in skipped
        }

"""
SQLAlchemy Base Configuration

Declarative base shared by the assessment and training tables.
"""

import datetime
from typing import Any, Dict
from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

# Naming convention so constraint names are stable across backends and migrations
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)

Base = declarative_base(metadata=metadata)


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


class ModelBase(Base):
    """Base class for all SQLAlchemy models."""

    __abstract__ = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to a dictionary of column values."""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }

    def update(self, data: Dict[str, Any]) -> None:
        """Set the given column values, ignoring unknown keys."""
        columns = self.__table__.columns
        for key, value in data.items():
            if key in columns:
                setattr(self, key, value)

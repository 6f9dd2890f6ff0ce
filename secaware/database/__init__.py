"""Database bootstrap: declarative base, engine and session factory."""

from secaware.database.base import Base, ModelBase, metadata, utcnow

__all__ = ["Base", "ModelBase", "metadata", "utcnow"]

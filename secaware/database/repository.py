"""
Shared repository plumbing: session factory resolution and error translation.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from secaware.common.error_handling import DatabaseError, SecAwareError
from secaware.common.logger import app_logger
from secaware.database.init_db import get_session_factory

logger = app_logger.getChild("database.repository")


@contextmanager
def translate_errors(operation: str) -> Iterator[None]:
    """Re-raise driver and ORM failures as ``DatabaseError``."""
    try:
        yield
    except SecAwareError:
        raise
    except SQLAlchemyError as e:
        logger.error(f"Database error during {operation}: {e}")
        raise DatabaseError(f"Database error during {operation}", cause=e) from e


class SessionFactoryMixin:
    """
    Gives a repository its ``async_session`` factory.

    An injected factory wins; otherwise the global one from ``init_db`` is
    resolved on first use.
    """

    _session_factory: Optional[sessionmaker] = None

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory

    @property
    def async_session(self) -> sessionmaker:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

"""
Training Repositories

Persistence of training modules and per-user progress rows.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete as sql_delete, func, or_
from sqlalchemy.exc import IntegrityError

from secaware.common.error_handling import DatabaseError
from secaware.common.logger import get_logger
from secaware.database.base import utcnow
from secaware.database.repository import SessionFactoryMixin, translate_errors
from secaware.training.database_models import (
    TrainingModule as TrainingModuleORM,
    TrainingProgress as TrainingProgressORM,
)
from secaware.training.models import ProgressStatus

logger = get_logger(__name__)

PROGRESS_COLUMNS = ("status", "progress_percentage", "time_spent", "started_at", "completed_at")


class TrainingRepository(ABC):
    """
    Data access for training modules and progress.

    Progress rows are unique per (user, module); ``mark_started`` is the only
    operation that creates them.
    """

    @abstractmethod
    async def get_module(self, module_id: int) -> Optional[Dict[str, Any]]:
        """
        Retrieve a module by id.

        Returns:
            Column values with ``prerequisites`` as stored (raw JSON text), or None
        """

    @abstractmethod
    async def get_module_summaries(self, module_ids: Iterable[int]) -> List[Dict[str, Any]]:
        """``id``, ``title`` and ``category`` of the existing modules among ``module_ids``."""

    @abstractmethod
    async def list_modules(
        self,
        user_id: str,
        filters: Optional[Dict[str, Any]] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Active modules, each merged with the user's progress columns (None when not started)."""

    @abstractmethod
    async def get_prerequisite_declarations(self) -> Dict[int, Optional[str]]:
        """Raw prerequisite declarations of every module, keyed by module id."""

    @abstractmethod
    async def get_progress_statuses(self, user_id: str, module_ids: Iterable[int]) -> Dict[int, str]:
        """
        Status of the user's progress rows for the given modules, in one query.

        Modules without a row are absent from the result.
        """

    @abstractmethod
    async def get_progress(self, user_id: str, module_id: int) -> Optional[Dict[str, Any]]:
        """The user's progress row for one module, or None."""

    @abstractmethod
    async def mark_started(self, user_id: str, module_id: int) -> Dict[str, Any]:
        """
        Create or reset the progress row to ``in_progress`` with a fresh ``started_at``.

        Returns:
            The resulting progress row
        """

    @abstractmethod
    async def update_progress(self, user_id: str, module_id: int, values: Dict[str, Any]) -> bool:
        """Overwrite progress columns; False if the user has no row for the module."""

    @abstractmethod
    async def list_progress(self, user_id: str) -> List[Dict[str, Any]]:
        """All of a user's progress rows with module title, category, content type and duration."""

    @abstractmethod
    async def count_progress(self, module_id: int) -> int:
        """Number of progress rows referencing a module."""

    @abstractmethod
    async def create_module(self, values: Dict[str, Any]) -> int:
        """Insert a module and return its id."""

    @abstractmethod
    async def update_module(self, module_id: int, values: Dict[str, Any]) -> bool:
        """Overwrite module columns; False if the module does not exist."""

    @abstractmethod
    async def delete_module(self, module_id: int) -> bool:
        """Hard-delete a module."""


def _progress_dict(row: TrainingProgressORM) -> Dict[str, Any]:
    return row.to_dict()


class SqlTrainingRepository(SessionFactoryMixin, TrainingRepository):
    """SQLAlchemy implementation of ``TrainingRepository``."""

    async def get_module(self, module_id: int) -> Optional[Dict[str, Any]]:
        with translate_errors(f"get module {module_id}"):
            async with self.async_session() as session:
                row = await session.get(TrainingModuleORM, module_id)
                return row.to_dict() if row is not None else None

    async def get_module_summaries(self, module_ids: Iterable[int]) -> List[Dict[str, Any]]:
        ids = list(module_ids)
        if not ids:
            return []
        with translate_errors("load module summaries"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(TrainingModuleORM.id, TrainingModuleORM.title, TrainingModuleORM.category)
                    .where(TrainingModuleORM.id.in_(ids))
                )
                by_id = {row.id: {"id": row.id, "title": row.title, "category": row.category} for row in result}
                return [by_id[module_id] for module_id in ids if module_id in by_id]

    async def list_modules(
        self,
        user_id: str,
        filters: Optional[Dict[str, Any]] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        progress_columns = [getattr(TrainingProgressORM, name) for name in PROGRESS_COLUMNS]
        stmt = (
            select(TrainingModuleORM, *progress_columns)
            .outerjoin(
                TrainingProgressORM,
                (TrainingProgressORM.module_id == TrainingModuleORM.id) & (TrainingProgressORM.user_id == user_id),
            )
            .where(TrainingModuleORM.is_active.is_(True))
        )
        for column, value in (filters or {}).items():
            if value is not None:
                stmt = stmt.where(getattr(TrainingModuleORM, column) == value)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(TrainingModuleORM.title.ilike(pattern), TrainingModuleORM.description.ilike(pattern)))
        stmt = stmt.order_by(TrainingModuleORM.category.asc(), TrainingModuleORM.created_at.desc(), TrainingModuleORM.id.desc())

        with translate_errors(f"list modules for user {user_id}"):
            async with self.async_session() as session:
                result = await session.execute(stmt)
                modules = []
                for row in result:
                    module = row[0].to_dict()
                    module.update(zip(PROGRESS_COLUMNS, row[1:]))
                    modules.append(module)
                return modules

    async def get_prerequisite_declarations(self) -> Dict[int, Optional[str]]:
        with translate_errors("load prerequisite graph"):
            async with self.async_session() as session:
                result = await session.execute(select(TrainingModuleORM.id, TrainingModuleORM.prerequisites))
                return {row.id: row.prerequisites for row in result}

    async def get_progress_statuses(self, user_id: str, module_ids: Iterable[int]) -> Dict[int, str]:
        ids = list(module_ids)
        if not ids:
            return {}
        with translate_errors(f"load prerequisite progress of user {user_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(TrainingProgressORM.module_id, TrainingProgressORM.status)
                    .where(TrainingProgressORM.user_id == user_id, TrainingProgressORM.module_id.in_(ids))
                )
                return {row.module_id: row.status for row in result}

    async def get_progress(self, user_id: str, module_id: int) -> Optional[Dict[str, Any]]:
        with translate_errors(f"get progress of user {user_id} on module {module_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(TrainingProgressORM).where(
                        TrainingProgressORM.user_id == user_id,
                        TrainingProgressORM.module_id == module_id,
                    )
                )
                row = result.scalar_one_or_none()
                return _progress_dict(row) if row is not None else None

    async def mark_started(self, user_id: str, module_id: int) -> Dict[str, Any]:
        with translate_errors(f"start module {module_id} for user {user_id}"):
            # A concurrent first start may insert the row between our read and our
            # insert; the second pass then finds it and updates instead.
            for _ in range(2):
                try:
                    async with self.async_session() as session:
                        async with session.begin():
                            result = await session.execute(
                                select(TrainingProgressORM).where(
                                    TrainingProgressORM.user_id == user_id,
                                    TrainingProgressORM.module_id == module_id,
                                )
                            )
                            row = result.scalar_one_or_none()
                            now = utcnow()
                            if row is None:
                                row = TrainingProgressORM(
                                    user_id=user_id,
                                    module_id=module_id,
                                    status=ProgressStatus.IN_PROGRESS.value,
                                    progress_percentage=0,
                                    time_spent=0,
                                    started_at=now,
                                    updated_at=now,
                                )
                                session.add(row)
                            else:
                                row.status = ProgressStatus.IN_PROGRESS.value
                                row.started_at = now
                                row.updated_at = now
                            await session.flush()
                            return _progress_dict(row)
                except IntegrityError:
                    logger.info(f"Progress row for user {user_id} on module {module_id} created concurrently, updating it")
            raise DatabaseError(f"Could not record start of module {module_id} for user {user_id}")

    async def update_progress(self, user_id: str, module_id: int, values: Dict[str, Any]) -> bool:
        with translate_errors(f"update progress of user {user_id} on module {module_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    result = await session.execute(
                        update(TrainingProgressORM)
                        .where(
                            TrainingProgressORM.user_id == user_id,
                            TrainingProgressORM.module_id == module_id,
                        )
                        .values(updated_at=utcnow(), **values)
                        .execution_options(synchronize_session=False)
                    )
                    return result.rowcount > 0

    async def list_progress(self, user_id: str) -> List[Dict[str, Any]]:
        with translate_errors(f"list progress of user {user_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(
                        TrainingProgressORM,
                        TrainingModuleORM.title,
                        TrainingModuleORM.category,
                        TrainingModuleORM.content_type,
                        TrainingModuleORM.duration,
                    )
                    .join(TrainingModuleORM, TrainingModuleORM.id == TrainingProgressORM.module_id)
                    .where(TrainingProgressORM.user_id == user_id)
                    .order_by(TrainingProgressORM.updated_at.desc(), TrainingProgressORM.id.desc())
                )
                rows = []
                for progress, title, category, content_type, duration in result:
                    row = _progress_dict(progress)
                    row.update(title=title, category=category, content_type=content_type, duration=duration)
                    rows.append(row)
                return rows

    async def count_progress(self, module_id: int) -> int:
        with translate_errors(f"count progress rows of module {module_id}"):
            async with self.async_session() as session:
                total = await session.scalar(
                    select(func.count()).select_from(TrainingProgressORM)
                    .where(TrainingProgressORM.module_id == module_id)
                )
                return int(total or 0)

    async def create_module(self, values: Dict[str, Any]) -> int:
        with translate_errors("create module"):
            async with self.async_session() as session:
                async with session.begin():
                    row = TrainingModuleORM(**values)
                    session.add(row)
                    await session.flush()
                    return row.id

    async def update_module(self, module_id: int, values: Dict[str, Any]) -> bool:
        with translate_errors(f"update module {module_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    row = await session.get(TrainingModuleORM, module_id)
                    if row is None:
                        return False
                    row.update(values)
                    row.updated_at = utcnow()
                    return True

    async def delete_module(self, module_id: int) -> bool:
        with translate_errors(f"delete module {module_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    result = await session.execute(
                        sql_delete(TrainingModuleORM).where(TrainingModuleORM.id == module_id)
                    )
                    return result.rowcount > 0

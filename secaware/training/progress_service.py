"""
Training Progress Service

Starts, advances and completes a user's progress on training modules.
Starting is gated by the prerequisite resolver; the other operations only
touch an existing progress row.
"""

from typing import Any, Dict, Optional

from secaware.common.error_handling import NotFoundError, PrerequisitesNotMetError, ValidationError
from secaware.common.logger import app_logger, log_execution_time
from secaware.database.base import utcnow
from secaware.training.models import ProgressStatus, ProgressSummary
from secaware.training.prerequisites import PrerequisiteResolver
from secaware.training.repositories import SqlTrainingRepository, TrainingRepository

logger = app_logger.getChild("training.progress")


def _check_percentage(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Progress percentage must be a number", details={"progress_percentage": value})
    if not 0 <= value <= 100:
        raise ValidationError("Progress percentage must be between 0 and 100", details={"progress_percentage": value})
    return int(value)


def _check_time_spent(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValidationError("Time spent must be a non-negative number", details={"time_spent": value})
    return int(value)


class TrainingProgressService:
    """
    Progress controller for training modules.

    Args:
        repository: Training store
        resolver: Prerequisite resolver; built over ``repository`` when omitted
    """

    def __init__(
        self,
        repository: Optional[TrainingRepository] = None,
        resolver: Optional[PrerequisiteResolver] = None,
    ):
        self.repository = repository or SqlTrainingRepository()
        self.resolver = resolver or PrerequisiteResolver(self.repository)

    @log_execution_time(logger)
    async def start(self, user_id: str, module_id: int) -> Dict[str, Any]:
        """
        Start (or restart) a module.

        A completed module can be restarted; its row goes back to
        ``in_progress`` with a fresh start time.

        Returns:
            The module descriptor

        Raises:
            NotFoundError: If the module does not exist or is inactive
            PrerequisitesNotMetError: If a direct prerequisite is not completed
        """
        module = await self.repository.get_module(module_id)
        if module is None or not module["is_active"]:
            raise NotFoundError("Module", module_id)

        check = await self.resolver.can_start(user_id, module_id)
        if not check.allowed:
            raise PrerequisitesNotMetError(module_id, check.blocked_by)

        await self.repository.mark_started(user_id, module_id)
        logger.info(f"Training module {module_id} started by user {user_id}")
        return module

    async def update_progress(self, user_id: str, module_id: int, percentage: Any, time_spent: Any = 0) -> None:
        """
        Record intermediate progress. The status is left unchanged.

        Raises:
            ValidationError: If the percentage is outside 0..100
            NotFoundError: If the user never started the module
        """
        values = {
            "progress_percentage": _check_percentage(percentage),
            "time_spent": _check_time_spent(time_spent or 0),
        }
        if not await self.repository.update_progress(user_id, module_id, values):
            raise NotFoundError("Progress", message=f"No progress found for module {module_id}",
                                details={"module_id": module_id})
        logger.info(f"Progress on module {module_id} for user {user_id} set to {values['progress_percentage']}%")

    @log_execution_time(logger)
    async def complete(
        self,
        user_id: str,
        module_id: int,
        final_percentage: Any = None,
        total_time_spent: Any = None,
    ) -> None:
        """
        Mark a module completed. Calling it again overwrites the same row.

        Args:
            final_percentage: Recorded percentage; 100 when omitted
            total_time_spent: Total seconds spent on the module

        Raises:
            NotFoundError: If the user never started the module
        """
        values = {
            "status": ProgressStatus.COMPLETED.value,
            "progress_percentage": _check_percentage(100 if final_percentage is None else final_percentage),
            "completed_at": utcnow(),
        }
        if total_time_spent is not None:
            values["time_spent"] = _check_time_spent(total_time_spent)

        if not await self.repository.update_progress(user_id, module_id, values):
            raise NotFoundError("Progress", message=f"No progress found for module {module_id}",
                                details={"module_id": module_id})
        logger.info(f"Training module {module_id} completed by user {user_id}")

    async def get_progress(self, user_id: str) -> ProgressSummary:
        """All of a user's progress rows, most recently updated first, with status counts."""
        rows = await self.repository.list_progress(user_id)
        summary = ProgressSummary(progress=rows)
        logger.info(
            f"Progress retrieved for user {user_id}: {summary.completed}/{summary.total_modules} modules completed"
        )
        return summary

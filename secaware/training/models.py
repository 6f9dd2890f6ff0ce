"""
Training Domain Models
"""

import enum
from typing import Any, Dict, List
from dataclasses import dataclass, field

from secaware.common.serialization import SerializableMixin


class ProgressStatus(str, enum.Enum):
    """Progress states of a user on a module."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class PrerequisiteCheck(SerializableMixin):
    """Outcome of a prerequisite check. ``blocked_by`` keeps declaration order."""
    module_id: int
    blocked_by: List[int] = field(default_factory=list)

    __serializable_fields__ = ["module_id", "allowed", "blocked_by"]

    @property
    def allowed(self) -> bool:
        return not self.blocked_by


@dataclass
class ProgressSummary(SerializableMixin):
    """A user's progress rows with counts per status."""
    progress: List[Dict[str, Any]]

    __serializable_fields__ = [
        "progress", "total_modules", "completed", "in_progress", "not_started", "overall_percentage"
    ]

    def _count(self, status: ProgressStatus) -> int:
        return sum(1 for row in self.progress if row.get("status") == status.value)

    @property
    def total_modules(self) -> int:
        return len(self.progress)

    @property
    def completed(self) -> int:
        return self._count(ProgressStatus.COMPLETED)

    @property
    def in_progress(self) -> int:
        return self._count(ProgressStatus.IN_PROGRESS)

    @property
    def not_started(self) -> int:
        return self._count(ProgressStatus.NOT_STARTED)

    @property
    def overall_percentage(self) -> int:
        if not self.progress:
            return 0
        return int(self.completed * 100 / self.total_modules + 0.5)

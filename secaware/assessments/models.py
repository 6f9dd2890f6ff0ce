"""
Assessment Domain Models

Enums and result objects shared by the attempt store, the scoring evaluator
and the lifecycle service. These are plain dataclasses; the ORM tables live in
``database_models``.
"""

import enum
import datetime
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from secaware.common.serialization import SerializableMixin


class AssessmentKind(str, enum.Enum):
    """The two kinds of assessment an attempt can belong to."""
    QUIZ = "quiz"
    GAME = "game"


class QuestionKind(str, enum.Enum):
    """Shapes of a quiz question. Only multi-select may have several correct options."""
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    MULTI_SELECT = "multi_select"


class AttemptStatus(str, enum.Enum):
    """Lifecycle states of an attempt."""
    OPEN = "open"
    CLOSED = "closed"
    ABANDONED = "abandoned"


class GameType(str, enum.Enum):
    """Mini-game families known to the client."""
    PHISHING_SIMULATOR = "phishing_simulator"
    PASSWORD_CHALLENGE = "password_challenge"
    THREAT_DETECTION = "threat_detection"
    FRAUD_DETECTION = "fraud_detection"
    CODE_REVIEW = "code_review"
    WATERMARK_PROTECTION = "watermark_protection"

    @classmethod
    def parse(cls, value: Optional[str], fallback: "GameType") -> "GameType":
        """Return the matching member, or ``fallback`` for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return fallback


@dataclass
class ScoringUnit:
    """A question as the evaluator sees it: an id and its point value."""
    id: int
    points: int = 1


@dataclass
class UnitOutcome:
    """Per-question scoring result."""
    unit_id: int
    points: int
    awarded: int
    answered: bool

    @property
    def correct(self) -> bool:
        return self.awarded > 0


@dataclass
class Evaluation(SerializableMixin):
    """Aggregate outcome of scoring one quiz submission."""
    score: int
    max_score: int
    passed: bool
    outcomes: List[UnitOutcome] = field(default_factory=list)

    __serializable_fields__ = ["score", "max_score", "passed", "percentage"]

    @property
    def percentage(self) -> int:
        return percentage_of(self.score, self.max_score)


def percentage_of(score: float, max_score: float) -> int:
    """Whole-number percentage, rounded half up; 0 when there is nothing to score."""
    if not max_score:
        return 0
    return int(score * 100 / max_score + 0.5)


@dataclass
class StartResult(SerializableMixin):
    """Returned when a new attempt is opened."""
    attempt_id: int
    kind: AssessmentKind
    assessment_id: int
    started_at: datetime.datetime
    discarded: int = 0
    game_data: Optional[Any] = None

    __serializable_fields__ = ["attempt_id", "kind", "assessment_id", "started_at", "game_data"]


@dataclass
class SubmitResult(SerializableMixin):
    """Returned when an attempt is closed."""
    attempt_id: int
    score: int
    max_score: int
    passed: Optional[bool]
    time_taken: Optional[int]
    self_reported: bool = False

    __serializable_fields__ = [
        "attempt_id", "score", "max_score", "percentage", "passed", "time_taken", "self_reported"
    ]

    @property
    def percentage(self) -> int:
        return percentage_of(self.score, self.max_score)


@dataclass
class AttemptRecord(SerializableMixin):
    """Read model of a stored attempt."""
    id: int
    user_id: str
    kind: AssessmentKind
    assessment_id: int
    status: AttemptStatus
    started_at: datetime.datetime
    completed_at: Optional[datetime.datetime] = None
    score: Optional[int] = None
    max_score: Optional[int] = None
    passed: Optional[bool] = None
    time_taken: Optional[int] = None
    answers: Optional[Any] = None
    self_reported: bool = False

    __serializable_fields__ = [
        "id", "user_id", "kind", "assessment_id", "status", "started_at", "completed_at",
        "score", "max_score", "percentage", "passed", "time_taken", "answers", "self_reported"
    ]

    @property
    def is_open(self) -> bool:
        return self.status == AttemptStatus.OPEN

    @property
    def percentage(self) -> Optional[int]:
        if self.score is None or self.max_score is None:
            return None
        return percentage_of(self.score, self.max_score)


@dataclass
class ResultsSummary(SerializableMixin):
    """All closed attempts of one user on one assessment."""
    assessment: Dict[str, Any]
    attempts: List[AttemptRecord]
    best_score: int
    total_attempts: int
    best_time: Optional[int] = None

    __serializable_fields__ = ["assessment", "attempts", "best_score", "best_time", "total_attempts"]


@dataclass
class HistoryPage(SerializableMixin):
    """A page of a user's closed attempts across assessments of one kind."""
    items: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int

    __serializable_fields__ = ["items", "total", "limit", "offset", "has_more"]

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


@dataclass
class LeaderboardEntry(SerializableMixin):
    rank: int
    user_id: str
    score: int
    max_score: Optional[int]
    time_taken: Optional[int]
    completed_at: Optional[datetime.datetime]

    __serializable_fields__ = ["rank", "user_id", "score", "max_score", "time_taken", "completed_at"]

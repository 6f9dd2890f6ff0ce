"""
Attempt Lifecycle Service

Opens, closes and reports on attempts at quizzes and mini-games.

An attempt is opened by ``start`` and closed exactly once by a submit call.
Starting again while an attempt is open discards the stale one; the discard
and the insert share a transaction and the store's open-slot constraint
rejects the loser of a concurrent start, which is then retried.
"""

from typing import Any, Dict, List, Optional

from secaware.assessments.models import (
    AssessmentKind,
    HistoryPage,
    LeaderboardEntry,
    ResultsSummary,
    StartResult,
    SubmitResult,
)
from secaware.assessments.repositories import (
    AssessmentContentRepository,
    AttemptRepository,
    OpenSlotTakenError,
    SqlAssessmentContentRepository,
    SqlAttemptRepository,
)
from secaware.assessments.scoring import evaluate_submission
from secaware.common.config import AppConfig, get_config
from secaware.common.error_handling import (
    AuthorizationError,
    InvalidAttemptError,
    MalformedInputError,
    NotFoundError,
)
from secaware.common.logger import app_logger, log_execution_time

logger = app_logger.getChild("assessments.attempts")


def _resource_name(kind: AssessmentKind) -> str:
    return "Quiz" if kind == AssessmentKind.QUIZ else "Game"


def _non_negative_int(name: str, value: Any, required: bool = True) -> Optional[int]:
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedInputError(f"{name} must be a number", details={name: value})
    if value < 0:
        raise MalformedInputError(f"{name} must not be negative", details={name: value})
    return int(value)


class AttemptLifecycleService:
    """
    Controller of the attempt lifecycle for both assessment kinds.

    Args:
        content_repository: Source of assessment definitions and answer keys
        attempt_repository: Attempt store
        config: Application configuration (engagement and environment sections are used)
    """

    def __init__(
        self,
        content_repository: Optional[AssessmentContentRepository] = None,
        attempt_repository: Optional[AttemptRepository] = None,
        config: Optional[AppConfig] = None,
    ):
        self.content = content_repository or SqlAssessmentContentRepository()
        self.attempts = attempt_repository or SqlAttemptRepository()
        self.config = config or get_config()

    async def _require_active(self, kind: AssessmentKind, assessment_id: int) -> Dict[str, Any]:
        assessment = await self.content.get_assessment(kind, assessment_id)
        if assessment is None or not assessment.get("is_active"):
            raise NotFoundError(_resource_name(kind), assessment_id)
        return assessment

    @log_execution_time(logger)
    async def start(self, user_id: str, kind: AssessmentKind, assessment_id: int) -> StartResult:
        """
        Open a new attempt, discarding any attempt the user still has open.

        Args:
            user_id: The user starting the assessment
            kind: Quiz or game
            assessment_id: The assessment to start

        Returns:
            The new attempt id; games also receive their configuration payload

        Raises:
            NotFoundError: If the assessment does not exist or is inactive
        """
        assessment = await self._require_active(kind, assessment_id)
        engagement = self.config.engagement

        for attempt_number in range(1, engagement.start_retry_limit + 1):
            try:
                record, discarded = await self.attempts.open_attempt(
                    user_id, kind, assessment_id,
                    retain_abandoned=engagement.retain_abandoned_attempts,
                )
                break
            except OpenSlotTakenError:
                if attempt_number == engagement.start_retry_limit:
                    raise
                logger.info(
                    f"Concurrent start for user {user_id} on {kind.value} {assessment_id}, "
                    f"retrying ({attempt_number}/{engagement.start_retry_limit})"
                )

        if discarded:
            action = "Abandoned" if engagement.retain_abandoned_attempts else "Deleted"
            logger.info(f"{action} {discarded} open {kind.value} attempt(s) for user {user_id} on {kind.value} {assessment_id}")
        logger.info(f"{_resource_name(kind)} attempt {record.id} started by user {user_id} for {kind.value} {assessment_id}")

        return StartResult(
            attempt_id=record.id,
            kind=kind,
            assessment_id=assessment_id,
            started_at=record.started_at,
            discarded=discarded,
            game_data=assessment.get("game_data") if kind == AssessmentKind.GAME else None,
        )

    async def _require_open_attempt(self, user_id: str, kind: AssessmentKind, assessment_id: int, attempt_id: int):
        record = await self.attempts.get_attempt(attempt_id)
        if (
            record is None
            or record.user_id != user_id
            or record.kind != kind
            or record.assessment_id != assessment_id
            or not record.is_open
        ):
            raise InvalidAttemptError(attempt_id)
        return record

    @log_execution_time(logger)
    async def submit_quiz(
        self,
        user_id: str,
        quiz_id: int,
        attempt_id: int,
        answers: Any,
        time_taken: Optional[int] = None,
    ) -> SubmitResult:
        """
        Score and close a quiz attempt.

        Args:
            user_id: The submitting user
            quiz_id: The quiz the attempt belongs to
            attempt_id: The open attempt
            answers: Mapping of question id to chosen option text(s) or id(s)
            time_taken: Seconds spent, as reported by the client

        Returns:
            Score, max score, percentage, pass flag and time taken

        Raises:
            InvalidAttemptError: If the attempt is missing, foreign or already closed
            MalformedInputError: If ``answers`` is not a mapping
        """
        await self._require_open_attempt(user_id, AssessmentKind.QUIZ, quiz_id, attempt_id)
        time_taken = _non_negative_int("time_taken", time_taken, required=False)

        quiz = await self.content.get_assessment(AssessmentKind.QUIZ, quiz_id)
        if quiz is None:
            raise InvalidAttemptError(attempt_id)
        units = await self.content.list_scoring_units(quiz_id)

        evaluation = await evaluate_submission(
            units,
            answers,
            pass_threshold=quiz["passing_score"],
            lookup_correct_options=self.content.get_correct_options,
        )

        closed = await self.attempts.close_attempt(
            attempt_id, user_id, AssessmentKind.QUIZ, quiz_id,
            score=evaluation.score,
            max_score=evaluation.max_score,
            passed=evaluation.passed,
            time_taken=time_taken,
            answers=answers if answers is not None else {},
        )
        if not closed:
            # Another submit closed the attempt between the check and the write
            raise InvalidAttemptError(attempt_id)

        logger.info(
            f"Quiz {quiz_id} completed by user {user_id}: score {evaluation.score}/{evaluation.max_score}, "
            f"passed: {evaluation.passed}"
        )
        return SubmitResult(
            attempt_id=attempt_id,
            score=evaluation.score,
            max_score=evaluation.max_score,
            passed=evaluation.passed,
            time_taken=time_taken,
        )

    @log_execution_time(logger)
    async def submit_game(
        self,
        user_id: str,
        game_id: int,
        attempt_id: int,
        score: Any,
        max_score: Any,
        time_taken: Optional[int] = None,
        game_result: Any = None,
    ) -> SubmitResult:
        """
        Close a game attempt with the score the client computed.

        The result is stored as-is and flagged as self-reported.

        Raises:
            InvalidAttemptError: If the attempt is missing, foreign or already closed
            MalformedInputError: If the scores are not non-negative numbers
        """
        await self._require_open_attempt(user_id, AssessmentKind.GAME, game_id, attempt_id)
        score = _non_negative_int("score", score)
        max_score = _non_negative_int("max_score", max_score)
        time_taken = _non_negative_int("time_taken", time_taken, required=False)

        closed = await self.attempts.close_attempt(
            attempt_id, user_id, AssessmentKind.GAME, game_id,
            score=score,
            max_score=max_score,
            passed=None,
            time_taken=time_taken,
            answers=game_result if game_result is not None else {},
            self_reported=True,
        )
        if not closed:
            raise InvalidAttemptError(attempt_id)

        logger.info(f"Game {game_id} completed by user {user_id}: score {score}/{max_score}")
        return SubmitResult(
            attempt_id=attempt_id,
            score=score,
            max_score=max_score,
            passed=None,
            time_taken=time_taken,
            self_reported=True,
        )

    async def get_results(self, user_id: str, kind: AssessmentKind, assessment_id: int) -> ResultsSummary:
        """
        Summarize a user's closed attempts on one assessment.

        Raises:
            NotFoundError: If the user has no closed attempt on the assessment
        """
        attempts = await self.attempts.list_closed_attempts(user_id, kind, assessment_id)
        if not attempts:
            raise NotFoundError(
                "Results", assessment_id,
                message=f"No completed attempts found for {kind.value} {assessment_id}",
            )

        assessment = await self.content.get_assessment(kind, assessment_id) or {"id": assessment_id}
        best_time = None
        if kind == AssessmentKind.GAME:
            times = [a.time_taken for a in attempts if a.time_taken is not None]
            best_time = min(times) if times else None

        logger.info(f"Retrieved {len(attempts)} {kind.value} result(s) for user {user_id} on {kind.value} {assessment_id}")
        return ResultsSummary(
            assessment=assessment,
            attempts=attempts,
            best_score=max(a.score or 0 for a in attempts),
            total_attempts=len(attempts),
            best_time=best_time,
        )

    async def get_history(
        self,
        user_id: str,
        kind: AssessmentKind,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> HistoryPage:
        """Page through a user's closed attempts of one kind, most recent first."""
        limit = limit or self.config.engagement.history_page_size
        if limit < 1 or offset < 0:
            raise MalformedInputError("limit must be positive and offset non-negative",
                                      details={"limit": limit, "offset": offset})
        items, total = await self.attempts.list_history(user_id, kind, limit, offset)
        return HistoryPage(items=items, total=total, limit=limit, offset=offset)

    async def get_leaderboard(self, game_id: int, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        """
        Rank a game's closed attempts by score, then by time.

        Equal (score, time) pairs share a rank and the next rank skips ahead,
        as with SQL ``RANK()``.
        """
        limit = limit or self.config.engagement.leaderboard_limit
        attempts = await self.attempts.list_top_attempts(AssessmentKind.GAME, game_id, limit)

        entries: List[LeaderboardEntry] = []
        for position, attempt in enumerate(attempts, start=1):
            previous = entries[-1] if entries else None
            if previous and (previous.score, previous.time_taken) == (attempt.score, attempt.time_taken):
                rank = previous.rank
            else:
                rank = position
            entries.append(LeaderboardEntry(
                rank=rank,
                user_id=attempt.user_id,
                score=attempt.score,
                max_score=attempt.max_score,
                time_taken=attempt.time_taken,
                completed_at=attempt.completed_at,
            ))
        logger.info(f"Leaderboard retrieved for game {game_id}: {len(entries)} entries")
        return entries

    async def clear_open_attempts(self, user_id: str) -> int:
        """
        Delete every open attempt of a user. Development environments only.

        Raises:
            AuthorizationError: Outside the development environment
        """
        if not self.config.is_development:
            raise AuthorizationError("Clearing open attempts is only available in development mode")
        cleared = await self.attempts.delete_open_attempts(user_id)
        logger.info(f"Cleared {cleared} open attempt(s) for user {user_id}")
        return cleared

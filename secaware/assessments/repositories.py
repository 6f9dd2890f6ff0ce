"""
Assessment Repositories

Data access for assessment definitions (quizzes, questions, options, games)
and for attempts. The abstract classes describe what the lifecycle service and
the catalog need; the ``Sql*`` classes implement them over SQLAlchemy's
asyncio extension.

Every repository call opens its own ``AsyncSession``, so independent lookups
(for example the per-question answer-key reads during scoring) can run
concurrently on separate connections.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, delete as sql_delete, func, or_, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from secaware.assessments.database_models import (
    Quiz as QuizORM,
    QuizQuestion as QuizQuestionORM,
    QuizAnswerOption as QuizAnswerOptionORM,
    MiniGame as MiniGameORM,
    Attempt as AttemptORM,
)
from secaware.assessments.models import (
    AssessmentKind,
    AttemptRecord,
    AttemptStatus,
    ScoringUnit,
)
from secaware.common.error_handling import DatabaseError
from secaware.common.logger import get_logger
from secaware.common.serialization import loads_or_default
from secaware.database.base import utcnow
from secaware.database.repository import SessionFactoryMixin, translate_errors

logger = get_logger(__name__)


class OpenSlotTakenError(DatabaseError):
    """A concurrent start committed an open attempt for the same pair first."""

    def __init__(self, user_id: str, kind: AssessmentKind, assessment_id: int, cause: Exception):
        super().__init__(
            message=f"Open attempt already exists for user {user_id} on {kind.value} {assessment_id}",
            details={"user_id": user_id, "kind": kind.value, "assessment_id": assessment_id},
            cause=cause,
        )


def _model_for(kind: AssessmentKind):
    return QuizORM if kind == AssessmentKind.QUIZ else MiniGameORM


def _to_record(row: AttemptORM) -> AttemptRecord:
    return AttemptRecord(
        id=row.id,
        user_id=row.user_id,
        kind=AssessmentKind(row.assessment_kind),
        assessment_id=row.assessment_id,
        status=AttemptStatus(row.status),
        started_at=row.started_at,
        completed_at=row.completed_at,
        score=row.score,
        max_score=row.max_score,
        passed=row.passed,
        time_taken=row.time_taken,
        answers=loads_or_default(row.answers),
        self_reported=bool(row.self_reported),
    )


def _option_dict(option: QuizAnswerOptionORM, include_correct: bool) -> Dict[str, Any]:
    data = {
        "id": option.id,
        "answer_text": option.answer_text,
        "order_index": option.order_index,
    }
    if include_correct:
        data["is_correct"] = option.is_correct
    return data


class AssessmentContentRepository(ABC):
    """
    Read and write access to assessment definitions.

    Definitions are returned as plain dictionaries of column values; the
    repository never hands out ORM instances.
    """

    @abstractmethod
    async def get_assessment(self, kind: AssessmentKind, assessment_id: int) -> Optional[Dict[str, Any]]:
        """
        Retrieve a quiz or game definition.

        Args:
            kind: Which table to read
            assessment_id: Primary key of the assessment

        Returns:
            Column values, or None if no such assessment exists

        Raises:
            DatabaseError: If the store fails
        """

    @abstractmethod
    async def list_scoring_units(self, quiz_id: int) -> List[ScoringUnit]:
        """
        List a quiz's questions in display order.

        Args:
            quiz_id: The quiz to read

        Returns:
            Question ids with their point values
        """

    @abstractmethod
    async def get_correct_options(self, question_id: int) -> List[Dict[str, Any]]:
        """
        Retrieve the options flagged correct for one question.

        Args:
            question_id: The question to read

        Returns:
            Dictionaries with ``id`` and ``answer_text``
        """

    @abstractmethod
    async def get_quiz_detail(self, quiz_id: int, include_correct: bool = False) -> Optional[Dict[str, Any]]:
        """
        Retrieve a quiz with its ordered questions and options.

        Args:
            quiz_id: The quiz to read
            include_correct: Whether options carry their ``is_correct`` flag

        Returns:
            The quiz dictionary with a ``questions`` list, or None
        """

    @abstractmethod
    async def list_assessments(
        self,
        kind: AssessmentKind,
        active_only: bool = True,
        filters: Optional[Dict[str, Any]] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """List quiz or game definitions, optionally filtered by column values and a title search."""

    @abstractmethod
    async def create_quiz(self, quiz: Dict[str, Any], questions: Sequence[Dict[str, Any]]) -> int:
        """Insert a quiz with its questions and options in one transaction and return its id."""

    @abstractmethod
    async def create_game(self, game: Dict[str, Any]) -> int:
        """Insert a game and return its id."""

    @abstractmethod
    async def update_assessment(self, kind: AssessmentKind, assessment_id: int, values: Dict[str, Any]) -> bool:
        """Overwrite the given columns; False if the assessment does not exist."""

    @abstractmethod
    async def delete_assessment(self, kind: AssessmentKind, assessment_id: int) -> bool:
        """Hard-delete an assessment (and for quizzes its questions and options)."""


class AttemptRepository(ABC):
    """
    Persistence of attempts.

    The store guarantees at most one open attempt per (user, kind, assessment)
    through a unique constraint; ``open_attempt`` surfaces a lost race as
    ``OpenSlotTakenError`` so the caller can retry.
    """

    @abstractmethod
    async def open_attempt(
        self,
        user_id: str,
        kind: AssessmentKind,
        assessment_id: int,
        retain_abandoned: bool = False,
    ) -> Tuple[AttemptRecord, int]:
        """
        Discard any open attempt for the pair and insert a new open one.

        Both steps run in the same transaction.

        Args:
            user_id: The user starting the assessment
            kind: Quiz or game
            assessment_id: The assessment being started
            retain_abandoned: Mark stale attempts abandoned instead of deleting them

        Returns:
            The new attempt and the number of attempts discarded

        Raises:
            OpenSlotTakenError: If a concurrent start claimed the open slot first
            DatabaseError: If the store fails otherwise
        """

    @abstractmethod
    async def get_attempt(self, attempt_id: int) -> Optional[AttemptRecord]:
        """Retrieve an attempt by id."""

    @abstractmethod
    async def close_attempt(
        self,
        attempt_id: int,
        user_id: str,
        kind: AssessmentKind,
        assessment_id: int,
        score: int,
        max_score: int,
        passed: Optional[bool],
        time_taken: Optional[int],
        answers: Any,
        self_reported: bool = False,
    ) -> bool:
        """
        Write the terminal state of an attempt.

        The write only applies while the attempt is still open and belongs to
        the given user and assessment.

        Returns:
            True if exactly this call closed the attempt
        """

    @abstractmethod
    async def list_closed_attempts(self, user_id: str, kind: AssessmentKind, assessment_id: int) -> List[AttemptRecord]:
        """Closed attempts of a user on one assessment, most recent first."""

    @abstractmethod
    async def list_history(
        self, user_id: str, kind: AssessmentKind, limit: int, offset: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """A page of a user's closed attempts of one kind with assessment titles, plus the total count."""

    @abstractmethod
    async def list_top_attempts(self, kind: AssessmentKind, assessment_id: int, limit: int) -> List[AttemptRecord]:
        """Closed attempts on one assessment ordered by score descending, then time ascending."""

    @abstractmethod
    async def best_results(self, user_id: str, kind: AssessmentKind) -> Dict[int, Dict[str, Any]]:
        """Per-assessment best score, best time and pass flag of a user's closed attempts."""

    @abstractmethod
    async def count_attempts(self, kind: AssessmentKind, assessment_id: int) -> int:
        """Number of attempts, in any state, referencing an assessment."""

    @abstractmethod
    async def delete_open_attempts(self, user_id: str) -> int:
        """Delete every open attempt of a user and return how many were removed."""


class SqlAssessmentContentRepository(SessionFactoryMixin, AssessmentContentRepository):
    """SQLAlchemy implementation of ``AssessmentContentRepository``."""

    async def get_assessment(self, kind: AssessmentKind, assessment_id: int) -> Optional[Dict[str, Any]]:
        model = _model_for(kind)
        with translate_errors(f"get {kind.value} {assessment_id}"):
            async with self.async_session() as session:
                row = await session.get(model, assessment_id)
                return row.to_dict() if row is not None else None

    async def list_scoring_units(self, quiz_id: int) -> List[ScoringUnit]:
        with translate_errors(f"list questions of quiz {quiz_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(QuizQuestionORM.id, QuizQuestionORM.points)
                    .where(QuizQuestionORM.quiz_id == quiz_id)
                    .order_by(QuizQuestionORM.order_index, QuizQuestionORM.id)
                )
                return [ScoringUnit(id=row.id, points=row.points) for row in result]

    async def get_correct_options(self, question_id: int) -> List[Dict[str, Any]]:
        with translate_errors(f"load answer key of question {question_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(QuizAnswerOptionORM.id, QuizAnswerOptionORM.answer_text)
                    .where(
                        QuizAnswerOptionORM.question_id == question_id,
                        QuizAnswerOptionORM.is_correct.is_(True),
                    )
                    .order_by(QuizAnswerOptionORM.order_index)
                )
                return [{"id": row.id, "answer_text": row.answer_text} for row in result]

    async def get_quiz_detail(self, quiz_id: int, include_correct: bool = False) -> Optional[Dict[str, Any]]:
        with translate_errors(f"load quiz {quiz_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(QuizORM)
                    .where(QuizORM.id == quiz_id)
                    .options(selectinload(QuizORM.questions).selectinload(QuizQuestionORM.options))
                )
                quiz = result.scalar_one_or_none()
                if quiz is None:
                    return None

                data = quiz.to_dict()
                data["questions"] = [
                    {
                        "id": question.id,
                        "question_text": question.question_text,
                        "question_type": question.question_type,
                        "points": question.points,
                        "order_index": question.order_index,
                        "explanation": question.explanation if include_correct else None,
                        "options": [_option_dict(option, include_correct) for option in question.options],
                    }
                    for question in quiz.questions
                ]
                return data

    async def list_assessments(
        self,
        kind: AssessmentKind,
        active_only: bool = True,
        filters: Optional[Dict[str, Any]] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        model = _model_for(kind)
        stmt = select(model)
        if active_only:
            stmt = stmt.where(model.is_active.is_(True))
        for column, value in (filters or {}).items():
            if value is not None:
                stmt = stmt.where(getattr(model, column) == value)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(model.title.ilike(pattern), model.description.ilike(pattern)))
        stmt = stmt.order_by(model.created_at.desc(), model.id.desc())

        with translate_errors(f"list {kind.value}s"):
            async with self.async_session() as session:
                result = await session.execute(stmt)
                return [row.to_dict() for row in result.scalars()]

    async def create_quiz(self, quiz: Dict[str, Any], questions: Sequence[Dict[str, Any]]) -> int:
        with translate_errors("create quiz"):
            async with self.async_session() as session:
                async with session.begin():
                    quiz_row = QuizORM(**quiz)
                    for position, question in enumerate(questions):
                        question_row = QuizQuestionORM(
                            question_text=question["question_text"],
                            question_type=question["question_type"],
                            points=question["points"],
                            order_index=question.get("order_index", position),
                            explanation=question.get("explanation"),
                        )
                        question_row.options = [
                            QuizAnswerOptionORM(
                                answer_text=option["answer_text"],
                                is_correct=bool(option.get("is_correct", False)),
                                order_index=option.get("order_index", option_position),
                            )
                            for option_position, option in enumerate(question["options"])
                        ]
                        quiz_row.questions.append(question_row)
                    session.add(quiz_row)
                    await session.flush()
                    return quiz_row.id

    async def create_game(self, game: Dict[str, Any]) -> int:
        with translate_errors("create game"):
            async with self.async_session() as session:
                async with session.begin():
                    row = MiniGameORM(**game)
                    session.add(row)
                    await session.flush()
                    return row.id

    async def update_assessment(self, kind: AssessmentKind, assessment_id: int, values: Dict[str, Any]) -> bool:
        model = _model_for(kind)
        with translate_errors(f"update {kind.value} {assessment_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    row = await session.get(model, assessment_id)
                    if row is None:
                        return False
                    row.update(values)
                    row.updated_at = utcnow()
                    return True

    async def delete_assessment(self, kind: AssessmentKind, assessment_id: int) -> bool:
        with translate_errors(f"delete {kind.value} {assessment_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    if kind == AssessmentKind.QUIZ:
                        question_ids = select(QuizQuestionORM.id).where(QuizQuestionORM.quiz_id == assessment_id)
                        await session.execute(
                            sql_delete(QuizAnswerOptionORM).where(QuizAnswerOptionORM.question_id.in_(question_ids))
                        )
                        await session.execute(
                            sql_delete(QuizQuestionORM).where(QuizQuestionORM.quiz_id == assessment_id)
                        )
                    model = _model_for(kind)
                    result = await session.execute(sql_delete(model).where(model.id == assessment_id))
                    return result.rowcount > 0


class SqlAttemptRepository(SessionFactoryMixin, AttemptRepository):
    """SQLAlchemy implementation of ``AttemptRepository``."""

    @staticmethod
    def _open_filter(user_id: str, kind: AssessmentKind, assessment_id: int):
        return (
            AttemptORM.user_id == user_id,
            AttemptORM.assessment_kind == kind.value,
            AttemptORM.assessment_id == assessment_id,
            AttemptORM.status == AttemptStatus.OPEN.value,
        )

    async def open_attempt(
        self,
        user_id: str,
        kind: AssessmentKind,
        assessment_id: int,
        retain_abandoned: bool = False,
    ) -> Tuple[AttemptRecord, int]:
        open_filter = self._open_filter(user_id, kind, assessment_id)
        try:
            async with self.async_session() as session:
                async with session.begin():
                    if retain_abandoned:
                        discard = (
                            update(AttemptORM)
                            .where(*open_filter)
                            .values(status=AttemptStatus.ABANDONED.value, open_slot=None)
                            .execution_options(synchronize_session=False)
                        )
                    else:
                        discard = (
                            sql_delete(AttemptORM)
                            .where(*open_filter)
                            .execution_options(synchronize_session=False)
                        )
                    discarded = (await session.execute(discard)).rowcount

                    row = AttemptORM(
                        user_id=user_id,
                        assessment_kind=kind.value,
                        assessment_id=assessment_id,
                        status=AttemptStatus.OPEN.value,
                        open_slot=True,
                        started_at=utcnow(),
                        self_reported=False,
                    )
                    session.add(row)
                    await session.flush()
                    return _to_record(row), discarded
        except IntegrityError as e:
            raise OpenSlotTakenError(user_id, kind, assessment_id, e) from e
        except SQLAlchemyError as e:
            logger.error(f"Database error opening attempt for user {user_id} on {kind.value} {assessment_id}: {e}")
            raise DatabaseError("Database error while opening attempt", cause=e) from e

    async def get_attempt(self, attempt_id: int) -> Optional[AttemptRecord]:
        with translate_errors(f"get attempt {attempt_id}"):
            async with self.async_session() as session:
                row = await session.get(AttemptORM, attempt_id)
                return _to_record(row) if row is not None else None

    async def close_attempt(
        self,
        attempt_id: int,
        user_id: str,
        kind: AssessmentKind,
        assessment_id: int,
        score: int,
        max_score: int,
        passed: Optional[bool],
        time_taken: Optional[int],
        answers: Any,
        self_reported: bool = False,
    ) -> bool:
        stmt = (
            update(AttemptORM)
            .where(AttemptORM.id == attempt_id, *self._open_filter(user_id, kind, assessment_id))
            .values(
                status=AttemptStatus.CLOSED.value,
                open_slot=None,
                completed_at=utcnow(),
                score=score,
                max_score=max_score,
                passed=passed,
                time_taken=time_taken,
                answers=json.dumps(answers),
                self_reported=self_reported,
            )
            .execution_options(synchronize_session=False)
        )
        with translate_errors(f"close attempt {attempt_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    result = await session.execute(stmt)
                    return result.rowcount == 1

    async def list_closed_attempts(self, user_id: str, kind: AssessmentKind, assessment_id: int) -> List[AttemptRecord]:
        with translate_errors(f"list results of {kind.value} {assessment_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(AttemptORM)
                    .where(
                        AttemptORM.user_id == user_id,
                        AttemptORM.assessment_kind == kind.value,
                        AttemptORM.assessment_id == assessment_id,
                        AttemptORM.status == AttemptStatus.CLOSED.value,
                    )
                    .order_by(AttemptORM.completed_at.desc(), AttemptORM.id.desc())
                )
                return [_to_record(row) for row in result.scalars()]

    async def list_history(
        self, user_id: str, kind: AssessmentKind, limit: int, offset: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        model = _model_for(kind)
        closed = (
            AttemptORM.user_id == user_id,
            AttemptORM.assessment_kind == kind.value,
            AttemptORM.status == AttemptStatus.CLOSED.value,
        )
        extra_columns = [model.title, model.difficulty]
        if kind == AssessmentKind.GAME:
            extra_columns.append(model.game_type)
        else:
            extra_columns.append(model.category)

        with translate_errors(f"list {kind.value} history of user {user_id}"):
            async with self.async_session() as session:
                total = await session.scalar(select(func.count()).select_from(AttemptORM).where(*closed))
                result = await session.execute(
                    select(AttemptORM, *extra_columns)
                    .join(model, model.id == AttemptORM.assessment_id)
                    .where(*closed)
                    .order_by(AttemptORM.completed_at.desc(), AttemptORM.id.desc())
                    .limit(limit)
                    .offset(offset)
                )
                items = []
                for row in result:
                    item = _to_record(row[0]).to_dict()
                    item[f"{kind.value}_title"] = row[1]
                    item["difficulty"] = row[2]
                    item["game_type" if kind == AssessmentKind.GAME else "category"] = row[3]
                    items.append(item)
                return items, int(total or 0)

    async def list_top_attempts(self, kind: AssessmentKind, assessment_id: int, limit: int) -> List[AttemptRecord]:
        with translate_errors(f"rank attempts of {kind.value} {assessment_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(AttemptORM)
                    .where(
                        AttemptORM.assessment_kind == kind.value,
                        AttemptORM.assessment_id == assessment_id,
                        AttemptORM.status == AttemptStatus.CLOSED.value,
                    )
                    .order_by(
                        AttemptORM.score.desc(),
                        AttemptORM.time_taken.asc().nulls_last(),
                        AttemptORM.completed_at.asc(),
                    )
                    .limit(limit)
                )
                return [_to_record(row) for row in result.scalars()]

    async def best_results(self, user_id: str, kind: AssessmentKind) -> Dict[int, Dict[str, Any]]:
        with translate_errors(f"aggregate {kind.value} results of user {user_id}"):
            async with self.async_session() as session:
                result = await session.execute(
                    select(
                        AttemptORM.assessment_id,
                        func.max(AttemptORM.score).label("best_score"),
                        func.min(AttemptORM.time_taken).label("best_time"),
                        func.max(case((AttemptORM.passed.is_(True), 1), else_=0)).label("passed"),
                    )
                    .where(
                        AttemptORM.user_id == user_id,
                        AttemptORM.assessment_kind == kind.value,
                        AttemptORM.status == AttemptStatus.CLOSED.value,
                    )
                    .group_by(AttemptORM.assessment_id)
                )
                return {
                    row.assessment_id: {
                        "best_score": row.best_score,
                        "best_time": row.best_time,
                        "passed": bool(row.passed) if row.passed is not None else None,
                    }
                    for row in result
                }

    async def count_attempts(self, kind: AssessmentKind, assessment_id: int) -> int:
        with translate_errors(f"count attempts of {kind.value} {assessment_id}"):
            async with self.async_session() as session:
                total = await session.scalar(
                    select(func.count()).select_from(AttemptORM).where(
                        AttemptORM.assessment_kind == kind.value,
                        AttemptORM.assessment_id == assessment_id,
                    )
                )
                return int(total or 0)

    async def delete_open_attempts(self, user_id: str) -> int:
        with translate_errors(f"clear open attempts of user {user_id}"):
            async with self.async_session() as session:
                async with session.begin():
                    result = await session.execute(
                        sql_delete(AttemptORM)
                        .where(AttemptORM.user_id == user_id, AttemptORM.status == AttemptStatus.OPEN.value)
                        .execution_options(synchronize_session=False)
                    )
                    return result.rowcount

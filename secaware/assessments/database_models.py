"""
SQLAlchemy ORM models for quizzes, mini-games and attempts.

This module defines:
- Quiz: a scored assessment made of ordered questions
- QuizQuestion: a scoring unit with a point value
- QuizAnswerOption: an option of a question, possibly flagged correct
- MiniGame: a client-scored assessment with an opaque configuration payload
- Attempt: one user's run at a quiz or game
"""

import json
from typing import Any, Dict

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.schema import UniqueConstraint

from secaware.assessments.models import AttemptStatus, QuestionKind, GameType
from secaware.common.serialization import loads_or_default
from secaware.database.base import ModelBase, utcnow


def _as_json_text(value: Any) -> Any:
    """Store dicts and lists as JSON text; validate strings."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, str):
        json.loads(value)
        return value
    raise ValueError(f"Expected JSON text, dict or list, got {type(value).__name__}")


class Quiz(ModelBase):
    """Quiz definition. ``passing_score`` is the minimum total score that passes."""
    __tablename__ = 'quizzes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="General Security")
    difficulty = Column(String(50), nullable=False, default="beginner")
    time_limit = Column(Integer, nullable=True, default=30)
    passing_score = Column(Integer, nullable=False, default=70)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    questions = relationship(
        "QuizQuestion", back_populates="quiz",
        order_by="QuizQuestion.order_index", cascade="all, delete-orphan"
    )


class QuizQuestion(ModelBase):
    """A scoring unit of a quiz."""
    __tablename__ = 'quiz_questions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    quiz_id = Column(Integer, ForeignKey('quizzes.id', ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(50), nullable=False, default=QuestionKind.MULTIPLE_CHOICE.value)
    points = Column(Integer, nullable=False, default=1)
    order_index = Column(Integer, nullable=False, default=0)
    explanation = Column(Text, nullable=True)

    quiz = relationship("Quiz", back_populates="questions")
    options = relationship(
        "QuizAnswerOption", back_populates="question",
        order_by="QuizAnswerOption.order_index", cascade="all, delete-orphan"
    )

    @validates('points')
    def validate_points(self, key, points):
        if points is not None and points < 1:
            raise ValueError("Question points must be at least 1")
        return points

    @validates('question_type')
    def validate_question_type(self, key, question_type):
        return QuestionKind(question_type).value


class QuizAnswerOption(ModelBase):
    """An answer option of a question."""
    __tablename__ = 'quiz_answer_options'

    id = Column(Integer, primary_key=True, autoincrement=True)
    question_id = Column(Integer, ForeignKey('quiz_questions.id', ondelete="CASCADE"), nullable=False, index=True)
    answer_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    order_index = Column(Integer, nullable=False, default=0)

    question = relationship("QuizQuestion", back_populates="options")


class MiniGame(ModelBase):
    """Mini-game definition. ``game_data`` is returned verbatim when a game starts."""
    __tablename__ = 'mini_games'

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    game_type = Column(String(50), nullable=False, default=GameType.PHISHING_SIMULATOR.value)
    difficulty = Column(String(50), nullable=False, default="beginner")
    instructions = Column(Text, nullable=True)
    game_data = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @validates('game_data')
    def validate_game_data(self, key, game_data):
        return _as_json_text(game_data)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["game_data"] = loads_or_default(self.game_data)
        return data


class Attempt(ModelBase):
    """
    One user's run at a quiz or a game.

    ``open_slot`` is TRUE while the attempt is open and NULL otherwise. The
    unique constraint over (user, kind, assessment, open_slot) therefore
    admits at most one open attempt per pair, while NULLs let any number of
    closed or abandoned attempts coexist.
    """
    __tablename__ = 'attempts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False)
    assessment_kind = Column(String(20), nullable=False)
    assessment_id = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=AttemptStatus.OPEN.value, index=True)
    open_slot = Column(Boolean, nullable=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    score = Column(Integer, nullable=True)
    max_score = Column(Integer, nullable=True)
    passed = Column(Boolean, nullable=True)
    time_taken = Column(Integer, nullable=True)
    answers = Column(Text, nullable=True)
    self_reported = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint(
            'user_id', 'assessment_kind', 'assessment_id', 'open_slot',
            name='uq_attempts_open_slot'
        ),
        Index('idx_attempts_user_assessment', 'user_id', 'assessment_kind', 'assessment_id'),
        Index('idx_attempts_assessment_status', 'assessment_kind', 'assessment_id', 'status'),
        # Discarded attempt ids must never be handed out again
        {'sqlite_autoincrement': True},
    )

    @validates('answers')
    def validate_answers(self, key, answers):
        return _as_json_text(answers)

"""
Assessment Catalog

Browsing and administration of quizzes and mini-games.

Write operations require the administrator role. Deleting an assessment that
already has attempts only deactivates it so results stay attributable;
assessments nobody has attempted are removed outright.
"""

import json
from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from secaware.assessments.models import AssessmentKind, GameType, QuestionKind
from secaware.assessments.repositories import (
    AssessmentContentRepository,
    AttemptRepository,
    SqlAssessmentContentRepository,
    SqlAttemptRepository,
)
from secaware.common.auth.roles import RoleProvider, StaticRoleProvider, require_admin
from secaware.common.config import AppConfig, get_config
from secaware.common.error_handling import NotFoundError, ValidationError
from secaware.common.logger import app_logger

logger = app_logger.getChild("assessments.catalog")

M = TypeVar("M", bound=BaseModel)


class AnswerOptionSpec(BaseModel):
    answer_text: str = Field(min_length=1)
    is_correct: bool = False


class QuestionSpec(BaseModel):
    """A question with its options. Only multi-select questions may have several correct options."""
    question_text: str = Field(min_length=1)
    question_type: QuestionKind = QuestionKind.MULTIPLE_CHOICE
    points: Optional[int] = Field(default=None, ge=1)
    explanation: Optional[str] = None
    options: List[AnswerOptionSpec] = Field(min_length=1)

    @model_validator(mode="after")
    def check_correct_options(self):
        correct = sum(1 for option in self.options if option.is_correct)
        if correct == 0:
            raise ValueError("At least one option must be marked correct")
        if correct > 1 and self.question_type != QuestionKind.MULTI_SELECT:
            raise ValueError(f"{self.question_type.value} questions must have exactly one correct option")
        return self


class QuizSpec(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: str = "General Security"
    difficulty: str = "beginner"
    time_limit: Optional[int] = Field(default=30, ge=0)
    passing_score: Optional[int] = Field(default=None, ge=0)
    questions: List[QuestionSpec] = Field(default_factory=list)


class QuizUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    time_limit: Optional[int] = Field(default=None, ge=0)
    passing_score: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class GameSpec(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    game_type: Optional[str] = None
    difficulty: str = "beginner"
    instructions: str = ""
    game_data: Any = None


class GameUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    game_type: Optional[str] = None
    difficulty: Optional[str] = None
    instructions: Optional[str] = None
    game_data: Any = None
    is_active: Optional[bool] = None


def parse_payload(model: Type[M], data: Union[M, Dict[str, Any]]) -> M:
    """Validate a dict against ``model``; model instances pass through."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__} payload",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            cause=e,
        ) from e


class AssessmentCatalog:
    """
    Quiz and game catalog.

    Args:
        content_repository: Assessment definition store
        attempt_repository: Attempt store, consulted for per-user bests and delete policy
        roles: Role provider guarding writes
        config: Application configuration
    """

    def __init__(
        self,
        content_repository: Optional[AssessmentContentRepository] = None,
        attempt_repository: Optional[AttemptRepository] = None,
        roles: Optional[RoleProvider] = None,
        config: Optional[AppConfig] = None,
    ):
        self.content = content_repository or SqlAssessmentContentRepository()
        self.attempts = attempt_repository or SqlAttemptRepository()
        self.roles = roles or StaticRoleProvider()
        self.config = config or get_config()

    # --- Browsing ---

    async def list_quizzes(
        self,
        user_id: str,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Active quizzes with the user's best score and pass flag."""
        quizzes = await self.content.list_assessments(
            AssessmentKind.QUIZ, filters={"category": category, "difficulty": difficulty}, search=search
        )
        bests = await self.attempts.best_results(user_id, AssessmentKind.QUIZ)
        for quiz in quizzes:
            best = bests.get(quiz["id"])
            quiz["attempted"] = best is not None
            quiz["best_score"] = best["best_score"] if best else None
            quiz["passed"] = best["passed"] if best else None
        return quizzes

    async def list_games(
        self,
        user_id: str,
        game_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Active games with the user's best score and best time."""
        games = await self.content.list_assessments(
            AssessmentKind.GAME, filters={"game_type": game_type, "difficulty": difficulty}, search=search
        )
        bests = await self.attempts.best_results(user_id, AssessmentKind.GAME)
        for game in games:
            best = bests.get(game["id"])
            game["attempted"] = best is not None
            game["best_score"] = best["best_score"] if best else None
            game["best_time"] = best["best_time"] if best else None
        return games

    async def get_quiz(self, quiz_id: int, include_correct: bool = False) -> Dict[str, Any]:
        """
        An active quiz with its questions and options.

        Correct-option flags and explanations are only included on request,
        so the payload can be sent to a quiz taker.
        """
        quiz = await self.content.get_quiz_detail(quiz_id, include_correct=include_correct)
        if quiz is None or not quiz["is_active"]:
            raise NotFoundError("Quiz", quiz_id)
        return quiz

    async def get_game(self, game_id: int) -> Dict[str, Any]:
        game = await self.content.get_assessment(AssessmentKind.GAME, game_id)
        if game is None or not game["is_active"]:
            raise NotFoundError("Game", game_id)
        return game

    # --- Administration ---

    async def create_quiz(self, user_id: str, data: Union[QuizSpec, Dict[str, Any]]) -> int:
        """
        Create a quiz with its questions.

        Raises:
            AuthorizationError: If the user may not administer content
            ValidationError: If a question violates the correct-option rules
        """
        await require_admin(self.roles, user_id, "create quizzes")
        spec = parse_payload(QuizSpec, data)
        engagement = self.config.engagement

        quiz = spec.model_dump(exclude={"questions"})
        if quiz["passing_score"] is None:
            quiz["passing_score"] = engagement.default_passing_score
        quiz["created_by"] = user_id

        questions = []
        for position, question in enumerate(spec.questions):
            questions.append({
                "question_text": question.question_text,
                "question_type": question.question_type.value,
                "points": question.points or engagement.default_question_points,
                "explanation": question.explanation,
                "order_index": position,
                "options": [option.model_dump() for option in question.options],
            })

        quiz_id = await self.content.create_quiz(quiz, questions)
        logger.info(f"Quiz {quiz_id} created by user {user_id} with {len(questions)} question(s)")
        return quiz_id

    async def update_quiz(self, user_id: str, quiz_id: int, data: Union[QuizUpdate, Dict[str, Any]]) -> None:
        await require_admin(self.roles, user_id, "update quizzes")
        values = parse_payload(QuizUpdate, data).model_dump(exclude_none=True)
        if not await self.content.update_assessment(AssessmentKind.QUIZ, quiz_id, values):
            raise NotFoundError("Quiz", quiz_id)
        logger.info(f"Quiz {quiz_id} updated by user {user_id}")

    async def delete_quiz(self, user_id: str, quiz_id: int) -> str:
        """Deactivate a quiz with attempts, delete one without. Returns the action taken."""
        await require_admin(self.roles, user_id, "delete quizzes")
        return await self._retire(user_id, AssessmentKind.QUIZ, quiz_id)

    async def create_game(self, user_id: str, data: Union[GameSpec, Dict[str, Any]]) -> int:
        """Create a game; unknown game types fall back to the phishing simulator."""
        await require_admin(self.roles, user_id, "create games")
        spec = parse_payload(GameSpec, data)

        game = spec.model_dump()
        game["game_type"] = GameType.parse(spec.game_type, GameType.PHISHING_SIMULATOR).value
        game["game_data"] = json.dumps(spec.game_data if spec.game_data is not None else {})
        game["created_by"] = user_id

        game_id = await self.content.create_game(game)
        logger.info(f"Game {game_id} ({game['game_type']}) created by user {user_id}")
        return game_id

    async def update_game(self, user_id: str, game_id: int, data: Union[GameUpdate, Dict[str, Any]]) -> None:
        """Update a game; an unknown game type keeps the current one."""
        await require_admin(self.roles, user_id, "update games")
        spec = parse_payload(GameUpdate, data)
        current = await self.content.get_assessment(AssessmentKind.GAME, game_id)
        if current is None:
            raise NotFoundError("Game", game_id)

        values = spec.model_dump(exclude_none=True)
        if "game_type" in values:
            fallback = GameType.parse(current["game_type"], GameType.PHISHING_SIMULATOR)
            values["game_type"] = GameType.parse(values["game_type"], fallback).value
        if "game_data" in values:
            values["game_data"] = json.dumps(values["game_data"])
        await self.content.update_assessment(AssessmentKind.GAME, game_id, values)
        logger.info(f"Game {game_id} updated by user {user_id}")

    async def delete_game(self, user_id: str, game_id: int) -> str:
        await require_admin(self.roles, user_id, "delete games")
        return await self._retire(user_id, AssessmentKind.GAME, game_id)

    async def _retire(self, user_id: str, kind: AssessmentKind, assessment_id: int) -> str:
        if await self.content.get_assessment(kind, assessment_id) is None:
            raise NotFoundError("Quiz" if kind == AssessmentKind.QUIZ else "Game", assessment_id)

        attempt_count = await self.attempts.count_attempts(kind, assessment_id)
        if attempt_count > 0:
            await self.content.update_assessment(kind, assessment_id, {"is_active": False})
            logger.info(
                f"{kind.value} {assessment_id} deactivated by user {user_id} "
                f"({attempt_count} attempt(s) reference it)"
            )
            return "deactivated"

        await self.content.delete_assessment(kind, assessment_id)
        logger.info(f"{kind.value} {assessment_id} deleted by user {user_id}")
        return "deleted"

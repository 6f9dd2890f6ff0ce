"""
Assessment API Routers

HTTP endpoints for quizzes and mini-games. The handlers only translate
between HTTP and the attempt service and catalog; engine errors are turned
into responses by the application's exception handlers.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from secaware.api import APIResponse
from secaware.assessments.attempt_service import AttemptLifecycleService
from secaware.assessments.catalog import AssessmentCatalog, GameSpec, GameUpdate, QuizSpec, QuizUpdate
from secaware.assessments.models import AssessmentKind
from secaware.common.auth.dependencies import get_current_user_id, get_role_provider
from secaware.common.auth.roles import RoleProvider
from secaware.common.logger import get_logger

logger = get_logger(__name__)

quizzes_router = APIRouter()
games_router = APIRouter()


# Request Models
class SubmitQuizRequest(BaseModel):
    attempt_id: int
    answers: Any = None
    time_taken: Optional[int] = Field(default=None, ge=0)


class SubmitGameRequest(BaseModel):
    attempt_id: int
    score: Any = None
    max_score: Any = None
    time_taken: Optional[int] = Field(default=None, ge=0)
    game_result: Any = None


def get_attempt_service() -> AttemptLifecycleService:
    return AttemptLifecycleService()


def get_assessment_catalog(roles: RoleProvider = Depends(get_role_provider)) -> AssessmentCatalog:
    return AssessmentCatalog(roles=roles)


# --- Quizzes ---

@quizzes_router.get("")
async def list_quizzes(
    category: Optional[str] = Query(None),
    difficulty: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    quizzes = await catalog.list_quizzes(user_id, category=category, difficulty=difficulty, search=search)
    return APIResponse.success(quizzes)


@quizzes_router.get("/history")
async def quiz_history(
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    page = await service.get_history(user_id, AssessmentKind.QUIZ, limit=limit, offset=offset)
    return APIResponse.success(page.to_dict())


@quizzes_router.delete("/clear-incomplete")
async def clear_incomplete_attempts(
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    cleared = await service.clear_open_attempts(user_id)
    return APIResponse.success({"cleared": cleared}, message=f"Cleared {cleared} open attempt(s)")


@quizzes_router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    quiz = await catalog.get_quiz(quiz_id)
    return APIResponse.success(quiz)


@quizzes_router.post("/{quiz_id}/start")
async def start_quiz(
    quiz_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    started = await service.start(user_id, AssessmentKind.QUIZ, quiz_id)
    return APIResponse.success(started.to_dict(), message="Quiz started")


@quizzes_router.post("/{quiz_id}/attempt")
async def submit_quiz(
    request: SubmitQuizRequest,
    quiz_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    result = await service.submit_quiz(
        user_id, quiz_id, request.attempt_id, request.answers, time_taken=request.time_taken
    )
    return APIResponse.success(result.to_dict(), message="Quiz submitted")


@quizzes_router.get("/{quiz_id}/results")
async def quiz_results(
    quiz_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    summary = await service.get_results(user_id, AssessmentKind.QUIZ, quiz_id)
    return APIResponse.success(summary.to_dict())


@quizzes_router.post("", status_code=201)
async def create_quiz(
    spec: QuizSpec,
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    quiz_id = await catalog.create_quiz(user_id, spec)
    return APIResponse.success({"id": quiz_id}, message="Quiz created")


@quizzes_router.put("/{quiz_id}")
async def update_quiz(
    update: QuizUpdate,
    quiz_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    await catalog.update_quiz(user_id, quiz_id, update)
    return APIResponse.success({"id": quiz_id}, message="Quiz updated")


@quizzes_router.delete("/{quiz_id}")
async def delete_quiz(
    quiz_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    action = await catalog.delete_quiz(user_id, quiz_id)
    return APIResponse.success({"id": quiz_id, "action": action}, message=f"Quiz {action}")


# --- Games ---

@games_router.get("")
async def list_games(
    game_type: Optional[str] = Query(None),
    difficulty: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    games = await catalog.list_games(user_id, game_type=game_type, difficulty=difficulty, search=search)
    return APIResponse.success(games)


@games_router.get("/history")
async def game_history(
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    page = await service.get_history(user_id, AssessmentKind.GAME, limit=limit, offset=offset)
    return APIResponse.success(page.to_dict())


@games_router.get("/{game_id}")
async def get_game(
    game_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    game = await catalog.get_game(game_id)
    return APIResponse.success(game)


@games_router.post("/{game_id}/start")
async def start_game(
    game_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    started = await service.start(user_id, AssessmentKind.GAME, game_id)
    return APIResponse.success(started.to_dict(), message="Game started")


@games_router.post("/{game_id}/attempt")
async def submit_game(
    request: SubmitGameRequest,
    game_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    result = await service.submit_game(
        user_id, game_id, request.attempt_id, request.score, request.max_score,
        time_taken=request.time_taken, game_result=request.game_result,
    )
    return APIResponse.success(result.to_dict(), message="Game submitted")


@games_router.get("/{game_id}/results")
async def game_results(
    game_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    summary = await service.get_results(user_id, AssessmentKind.GAME, game_id)
    return APIResponse.success(summary.to_dict())


@games_router.get("/{game_id}/leaderboard")
async def game_leaderboard(
    game_id: int = Path(...),
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    service: AttemptLifecycleService = Depends(get_attempt_service),
) -> Dict[str, Any]:
    entries = await service.get_leaderboard(game_id, limit=limit)
    return APIResponse.success([entry.to_dict() for entry in entries])


@games_router.post("", status_code=201)
async def create_game(
    spec: GameSpec,
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    game_id = await catalog.create_game(user_id, spec)
    return APIResponse.success({"id": game_id}, message="Game created")


@games_router.put("/{game_id}")
async def update_game(
    update: GameUpdate,
    game_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    await catalog.update_game(user_id, game_id, update)
    return APIResponse.success({"id": game_id}, message="Game updated")


@games_router.delete("/{game_id}")
async def delete_game(
    game_id: int = Path(...),
    user_id: str = Depends(get_current_user_id),
    catalog: AssessmentCatalog = Depends(get_assessment_catalog),
) -> Dict[str, Any]:
    action = await catalog.delete_game(user_id, game_id)
    return APIResponse.success({"id": game_id, "action": action}, message=f"Game {action}")


logger.info(f"Assessment routers loaded: {len(quizzes_router.routes)} quiz routes, {len(games_router.routes)} game routes")

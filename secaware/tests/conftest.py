"""
Shared fixtures: a throwaway SQLite database per test and the repositories,
services and catalogs wired to it.
"""

from typing import Any, Dict, List, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from secaware.assessments.attempt_service import AttemptLifecycleService
from secaware.assessments.catalog import AssessmentCatalog
from secaware.assessments.repositories import SqlAssessmentContentRepository, SqlAttemptRepository
from secaware.common.auth.roles import StaticRoleProvider
from secaware.common.config import AppConfig, EnvironmentConfig
from secaware.database.init_db import build_session_factory, create_schema
from secaware.training.catalog import TrainingCatalog
from secaware.training.progress_service import TrainingProgressService
from secaware.training.repositories import SqlTrainingRepository

ADMIN_ID = "admin-1"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def question(
    correct: Sequence[str],
    wrong: Sequence[str] = ("Wrong",),
    points: int = 1,
    question_type: str = "multiple_choice",
    text: str = "Pick the right answer",
) -> Dict[str, Any]:
    """Question payload in the shape the content repository stores."""
    options = [{"answer_text": answer, "is_correct": True} for answer in correct]
    options += [{"answer_text": answer, "is_correct": False} for answer in wrong]
    return {
        "question_text": text,
        "question_type": question_type,
        "points": points,
        "options": options,
    }


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'secaware_test.db'}", poolclass=NullPool)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def app_config():
    return AppConfig(environment=EnvironmentConfig(env="testing"))


@pytest.fixture
def content_repository(session_factory):
    return SqlAssessmentContentRepository(session_factory)


@pytest.fixture
def attempt_repository(session_factory):
    return SqlAttemptRepository(session_factory)


@pytest.fixture
def training_repository(session_factory):
    return SqlTrainingRepository(session_factory)


@pytest.fixture
def roles():
    return StaticRoleProvider([ADMIN_ID])


@pytest.fixture
def attempt_service(content_repository, attempt_repository, app_config):
    return AttemptLifecycleService(content_repository, attempt_repository, app_config)


@pytest.fixture
def assessment_catalog(content_repository, attempt_repository, roles, app_config):
    return AssessmentCatalog(content_repository, attempt_repository, roles, app_config)


@pytest.fixture
def progress_service(training_repository):
    return TrainingProgressService(training_repository)


@pytest.fixture
def training_catalog(training_repository, roles, app_config):
    return TrainingCatalog(training_repository, roles, app_config)


@pytest.fixture
def create_quiz(content_repository):
    """Store a quiz and return ``(quiz_id, question_ids)``."""
    async def _create(questions: List[Dict[str, Any]], passing_score: int = 70, **fields):
        quiz = {"title": "Phishing basics", "passing_score": passing_score}
        quiz.update(fields)
        quiz_id = await content_repository.create_quiz(quiz, questions)
        units = await content_repository.list_scoring_units(quiz_id)
        return quiz_id, [unit.id for unit in units]
    return _create


@pytest.fixture
def create_game(content_repository):
    async def _create(**fields):
        game = {
            "title": "Spot the phish",
            "game_type": "phishing_simulator",
            "instructions": "Flag the suspicious emails",
            "game_data": {"emails": [{"id": 1, "phishing": True}]},
        }
        game.update(fields)
        return await content_repository.create_game(game)
    return _create


@pytest.fixture
def create_module(training_repository):
    async def _create(title: str = "Module", prerequisites: Any = None, **fields):
        module = {
            "title": title,
            "category": "Security Basics",
            "prerequisites": prerequisites if prerequisites is not None else [],
        }
        module.update(fields)
        return await training_repository.create_module(module)
    return _create

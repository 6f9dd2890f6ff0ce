"""
Catalog tests: authoring rules, role checks and the soft/hard delete policy.
"""

import pytest

from secaware.assessments.models import AssessmentKind
from secaware.common.error_handling import (
    AuthorizationError,
    MalformedInputError,
    NotFoundError,
    PrerequisiteCycleError,
    ValidationError,
)
from secaware.tests.conftest import ADMIN_ID, USER_ID

QUIZ_PAYLOAD = {
    "title": "Social engineering",
    "category": "Phishing",
    "questions": [
        {
            "question_text": "What should you do with a suspicious email?",
            "points": 2,
            "explanation": "Reporting lets the security team block the sender.",
            "options": [
                {"answer_text": "Report it", "is_correct": True},
                {"answer_text": "Reply to ask", "is_correct": False},
            ],
        },
        {
            "question_text": "Which are signs of phishing?",
            "question_type": "multi_select",
            "options": [
                {"answer_text": "Urgency", "is_correct": True},
                {"answer_text": "Mismatched sender", "is_correct": True},
                {"answer_text": "Company logo", "is_correct": False},
            ],
        },
    ],
}


@pytest.mark.asyncio
async def test_create_quiz_requires_admin(assessment_catalog):
    with pytest.raises(AuthorizationError):
        await assessment_catalog.create_quiz(USER_ID, QUIZ_PAYLOAD)


@pytest.mark.asyncio
async def test_create_quiz_applies_defaults(assessment_catalog, content_repository):
    quiz_id = await assessment_catalog.create_quiz(ADMIN_ID, QUIZ_PAYLOAD)

    quiz = await content_repository.get_quiz_detail(quiz_id, include_correct=True)
    assert quiz["passing_score"] == 70
    assert quiz["created_by"] == ADMIN_ID
    assert [q["points"] for q in quiz["questions"]] == [2, 1]
    assert [q["question_type"] for q in quiz["questions"]] == ["multiple_choice", "multi_select"]


@pytest.mark.asyncio
async def test_quiz_detail_hides_answer_key_from_takers(assessment_catalog):
    quiz_id = await assessment_catalog.create_quiz(ADMIN_ID, QUIZ_PAYLOAD)

    quiz = await assessment_catalog.get_quiz(quiz_id)

    first = quiz["questions"][0]
    assert [option["answer_text"] for option in first["options"]] == ["Report it", "Reply to ask"]
    assert all("is_correct" not in option for option in first["options"])
    assert first["explanation"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("options,question_type", [
    ([{"answer_text": "A"}, {"answer_text": "B"}], "multiple_choice"),
    ([{"answer_text": "A", "is_correct": True}, {"answer_text": "B", "is_correct": True}], "multiple_choice"),
    ([{"answer_text": "True", "is_correct": True}, {"answer_text": "False", "is_correct": True}], "true_false"),
    ([], "multiple_choice"),
])
async def test_invalid_questions_are_rejected(assessment_catalog, options, question_type):
    payload = {
        "title": "Broken",
        "questions": [{"question_text": "?", "question_type": question_type, "options": options}],
    }

    with pytest.raises(ValidationError):
        await assessment_catalog.create_quiz(ADMIN_ID, payload)


@pytest.mark.asyncio
async def test_update_quiz(assessment_catalog, content_repository):
    quiz_id = await assessment_catalog.create_quiz(ADMIN_ID, QUIZ_PAYLOAD)

    await assessment_catalog.update_quiz(ADMIN_ID, quiz_id, {"title": "Renamed", "passing_score": 2})

    quiz = await content_repository.get_assessment(AssessmentKind.QUIZ, quiz_id)
    assert quiz["title"] == "Renamed"
    assert quiz["passing_score"] == 2
    assert quiz["category"] == "Phishing"

    with pytest.raises(NotFoundError):
        await assessment_catalog.update_quiz(ADMIN_ID, 999, {"title": "Ghost"})


@pytest.mark.asyncio
async def test_delete_quiz_without_attempts_removes_it(assessment_catalog, content_repository):
    quiz_id = await assessment_catalog.create_quiz(ADMIN_ID, QUIZ_PAYLOAD)

    assert await assessment_catalog.delete_quiz(ADMIN_ID, quiz_id) == "deleted"
    assert await content_repository.get_assessment(AssessmentKind.QUIZ, quiz_id) is None
    assert await content_repository.list_scoring_units(quiz_id) == []


@pytest.mark.asyncio
async def test_delete_quiz_with_attempts_deactivates_it(assessment_catalog, attempt_service, content_repository):
    quiz_id = await assessment_catalog.create_quiz(ADMIN_ID, QUIZ_PAYLOAD)
    await attempt_service.start(USER_ID, AssessmentKind.QUIZ, quiz_id)

    assert await assessment_catalog.delete_quiz(ADMIN_ID, quiz_id) == "deactivated"

    quiz = await content_repository.get_assessment(AssessmentKind.QUIZ, quiz_id)
    assert quiz["is_active"] is False
    with pytest.raises(NotFoundError):
        await assessment_catalog.get_quiz(quiz_id)
    assert await assessment_catalog.list_quizzes(USER_ID) == []


@pytest.mark.asyncio
async def test_list_quizzes_reports_best_results(assessment_catalog, attempt_service, content_repository):
    quiz_id = await assessment_catalog.create_quiz(ADMIN_ID, dict(QUIZ_PAYLOAD, passing_score=2))
    other_id = await assessment_catalog.create_quiz(ADMIN_ID, dict(QUIZ_PAYLOAD, title="Untaken"))
    units = await content_repository.list_scoring_units(quiz_id)
    started = await attempt_service.start(USER_ID, AssessmentKind.QUIZ, quiz_id)
    await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {str(units[0].id): "Report it"})

    quizzes = {quiz["id"]: quiz for quiz in await assessment_catalog.list_quizzes(USER_ID)}

    assert quizzes[quiz_id]["attempted"] is True
    assert quizzes[quiz_id]["best_score"] == 2
    assert quizzes[quiz_id]["passed"] is True
    assert quizzes[other_id]["attempted"] is False
    assert quizzes[other_id]["best_score"] is None

    found = await assessment_catalog.list_quizzes(USER_ID, search="untaken")
    assert [quiz["id"] for quiz in found] == [other_id]


@pytest.mark.asyncio
async def test_game_type_fallbacks(assessment_catalog):
    game_id = await assessment_catalog.create_game(
        ADMIN_ID, {"title": "Mystery", "game_type": "space_invaders", "game_data": {"level": 1}}
    )

    game = await assessment_catalog.get_game(game_id)
    assert game["game_type"] == "phishing_simulator"
    assert game["game_data"] == {"level": 1}

    await assessment_catalog.update_game(ADMIN_ID, game_id, {"game_type": "password_challenge"})
    await assessment_catalog.update_game(ADMIN_ID, game_id, {"game_type": "bogus", "game_data": {"level": 2}})

    game = await assessment_catalog.get_game(game_id)
    assert game["game_type"] == "password_challenge"
    assert game["game_data"] == {"level": 2}


@pytest.mark.asyncio
async def test_update_game_with_unknown_stored_type(assessment_catalog, content_repository):
    game_id = await assessment_catalog.create_game(ADMIN_ID, {"title": "Legacy"})
    await content_repository.update_assessment(AssessmentKind.GAME, game_id, {"game_type": "retired_game"})

    await assessment_catalog.update_game(ADMIN_ID, game_id, {"game_type": "bogus"})

    assert (await assessment_catalog.get_game(game_id))["game_type"] == "phishing_simulator"


@pytest.mark.asyncio
async def test_delete_game_policy(assessment_catalog, attempt_service):
    played = await assessment_catalog.create_game(ADMIN_ID, {"title": "Played"})
    unplayed = await assessment_catalog.create_game(ADMIN_ID, {"title": "Unplayed"})
    await attempt_service.start(USER_ID, AssessmentKind.GAME, played)

    assert await assessment_catalog.delete_game(ADMIN_ID, played) == "deactivated"
    assert await assessment_catalog.delete_game(ADMIN_ID, unplayed) == "deleted"
    with pytest.raises(NotFoundError):
        await assessment_catalog.delete_game(ADMIN_ID, unplayed)


# --- Training modules ---

@pytest.mark.asyncio
async def test_create_module_validates_prerequisites(training_catalog, training_repository):
    base = await training_catalog.create_module(ADMIN_ID, {"title": "Base"})

    module_id = await training_catalog.create_module(ADMIN_ID, {"title": "Next", "prerequisites": [base]})

    module = await training_repository.get_module(module_id)
    assert module["prerequisites"] == f"[{base}]"
    assert module["content_type"] == "interactive"
    assert module["duration"] == 30

    with pytest.raises(ValidationError):
        await training_catalog.create_module(ADMIN_ID, {"title": "Dangling", "prerequisites": [9999]})
    with pytest.raises(MalformedInputError):
        await training_catalog.create_module(ADMIN_ID, {"title": "Typed", "prerequisites": ["1"]})
    with pytest.raises(AuthorizationError):
        await training_catalog.create_module(USER_ID, {"title": "Sneaky"})


@pytest.mark.asyncio
async def test_update_module_rejects_cycles(training_catalog, training_repository):
    a = await training_catalog.create_module(ADMIN_ID, {"title": "A"})
    b = await training_catalog.create_module(ADMIN_ID, {"title": "B", "prerequisites": [a]})
    c = await training_catalog.create_module(ADMIN_ID, {"title": "C", "prerequisites": [b]})

    with pytest.raises(PrerequisiteCycleError) as exc_info:
        await training_catalog.update_module(ADMIN_ID, a, {"prerequisites": [c]})
    assert set(exc_info.value.cycle) == {a, b, c}
    assert (await training_repository.get_module(a))["prerequisites"] == "[]"

    with pytest.raises(ValidationError):
        await training_catalog.update_module(ADMIN_ID, a, {"prerequisites": [a]})

    await training_catalog.update_module(ADMIN_ID, c, {"prerequisites": [a, b], "title": "C2"})
    module = await training_repository.get_module(c)
    assert module["title"] == "C2"
    assert module["prerequisites"] == f"[{a}, {b}]"


@pytest.mark.asyncio
async def test_get_module_includes_progress_and_prerequisites(training_catalog, progress_service):
    a = await training_catalog.create_module(ADMIN_ID, {"title": "A", "category": "Basics"})
    b = await training_catalog.create_module(ADMIN_ID, {"title": "B", "prerequisites": [a]})
    await progress_service.start(USER_ID, a)

    module = await training_catalog.get_module(USER_ID, b)

    assert module["prerequisites"] == [{"id": a, "title": "A", "category": "Basics"}]
    assert module["progress"] is None
    assert module["can_start"] is False
    assert module["blocked_by"] == [a]

    listed = {m["id"]: m for m in await training_catalog.list_modules(USER_ID)}
    assert listed[a]["status"] == "in_progress"
    assert listed[b]["status"] == "not_started"
    assert listed[b]["prerequisites"] == [a]


@pytest.mark.asyncio
async def test_delete_module_policy(training_catalog, progress_service, training_repository):
    used = await training_catalog.create_module(ADMIN_ID, {"title": "Used"})
    unused = await training_catalog.create_module(ADMIN_ID, {"title": "Unused"})
    await progress_service.start(USER_ID, used)

    assert await training_catalog.delete_module(ADMIN_ID, used) == "deactivated"
    assert (await training_repository.get_module(used))["is_active"] is False
    assert await training_catalog.delete_module(ADMIN_ID, unused) == "deleted"
    assert await training_repository.get_module(unused) is None


@pytest.mark.asyncio
async def test_delete_module_refuses_while_other_modules_depend_on_it(training_catalog, training_repository):
    base = await training_catalog.create_module(ADMIN_ID, {"title": "Base"})
    dependent = await training_catalog.create_module(ADMIN_ID, {"title": "Dependent", "prerequisites": [base]})

    with pytest.raises(ValidationError) as exc_info:
        await training_catalog.delete_module(ADMIN_ID, base)

    assert exc_info.value.details["dependent_modules"] == [dependent]
    assert await training_repository.get_module(base) is not None

    await training_catalog.update_module(ADMIN_ID, dependent, {"prerequisites": []})
    assert await training_catalog.delete_module(ADMIN_ID, base) == "deleted"

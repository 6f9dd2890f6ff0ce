"""
Attempt lifecycle tests against a real SQLite database.

Covers the one-open-attempt rule, single completion, quiz scoring end to
end, self-reported game results, results, history and leaderboards.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError

from secaware.assessments.attempt_service import AttemptLifecycleService
from secaware.assessments.database_models import Attempt as AttemptORM
from secaware.assessments.models import AssessmentKind, AttemptStatus
from secaware.assessments.repositories import OpenSlotTakenError
from secaware.common.config import AppConfig, EngagementConfig, EnvironmentConfig
from secaware.common.error_handling import (
    AuthorizationError,
    InvalidAttemptError,
    MalformedInputError,
    NotFoundError,
)
from secaware.tests.conftest import OTHER_USER_ID, USER_ID, question

QUIZ = AssessmentKind.QUIZ
GAME = AssessmentKind.GAME


@pytest.mark.asyncio
async def test_start_opens_an_attempt(attempt_service, attempt_repository, create_quiz):
    quiz_id, _ = await create_quiz([question(["A"])])

    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    record = await attempt_repository.get_attempt(started.attempt_id)
    assert record.status == AttemptStatus.OPEN
    assert record.user_id == USER_ID
    assert record.assessment_id == quiz_id
    assert started.discarded == 0
    assert started.game_data is None


@pytest.mark.asyncio
async def test_second_start_discards_the_stale_attempt(attempt_service, attempt_repository, create_quiz):
    quiz_id, _ = await create_quiz([question(["A"])])

    first = await attempt_service.start(USER_ID, QUIZ, quiz_id)
    second = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    assert second.attempt_id != first.attempt_id
    assert second.discarded == 1
    assert await attempt_repository.get_attempt(first.attempt_id) is None
    assert (await attempt_repository.get_attempt(second.attempt_id)).is_open


@pytest.mark.asyncio
async def test_submit_with_discarded_attempt_id_is_rejected(attempt_service, attempt_repository, create_quiz):
    quiz_id, question_ids = await create_quiz([question(["A"], points=10)])
    stale = await attempt_service.start(USER_ID, QUIZ, quiz_id)
    fresh = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    with pytest.raises(InvalidAttemptError):
        await attempt_service.submit_quiz(USER_ID, quiz_id, stale.attempt_id, {str(question_ids[0]): "A"})

    attempt = await attempt_repository.get_attempt(fresh.attempt_id)
    assert attempt.is_open
    assert attempt.score is None


@pytest.mark.asyncio
async def test_start_does_not_touch_other_users_attempts(attempt_service, attempt_repository, create_quiz):
    quiz_id, _ = await create_quiz([question(["A"])])

    mine = await attempt_service.start(USER_ID, QUIZ, quiz_id)
    theirs = await attempt_service.start(OTHER_USER_ID, QUIZ, quiz_id)

    assert theirs.discarded == 0
    assert (await attempt_repository.get_attempt(mine.attempt_id)).is_open


@pytest.mark.asyncio
async def test_retained_attempts_are_marked_abandoned(content_repository, attempt_repository, create_quiz):
    config = AppConfig(engagement=EngagementConfig(retain_abandoned_attempts=True))
    service = AttemptLifecycleService(content_repository, attempt_repository, config)
    quiz_id, _ = await create_quiz([question(["A"])])

    first = await service.start(USER_ID, QUIZ, quiz_id)
    second = await service.start(USER_ID, QUIZ, quiz_id)

    stale = await attempt_repository.get_attempt(first.attempt_id)
    assert stale.status == AttemptStatus.ABANDONED
    assert (await attempt_repository.get_attempt(second.attempt_id)).is_open


@pytest.mark.asyncio
async def test_start_unknown_or_inactive_assessment(attempt_service, content_repository, create_quiz):
    with pytest.raises(NotFoundError):
        await attempt_service.start(USER_ID, QUIZ, 404)

    quiz_id, _ = await create_quiz([question(["A"])], is_active=False)
    with pytest.raises(NotFoundError):
        await attempt_service.start(USER_ID, QUIZ, quiz_id)


@pytest.mark.asyncio
async def test_open_slot_constraint_rejects_a_second_open_attempt(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add(AttemptORM(user_id=USER_ID, assessment_kind="quiz", assessment_id=1,
                                   status="closed", open_slot=None))
            session.add(AttemptORM(user_id=USER_ID, assessment_kind="quiz", assessment_id=1,
                                   status="closed", open_slot=None))
            session.add(AttemptORM(user_id=USER_ID, assessment_kind="quiz", assessment_id=1,
                                   status="open", open_slot=True))

    with pytest.raises(IntegrityError):
        async with session_factory() as session:
            async with session.begin():
                session.add(AttemptORM(user_id=USER_ID, assessment_kind="quiz", assessment_id=1,
                                       status="open", open_slot=True))


@pytest.mark.asyncio
async def test_start_retries_when_a_concurrent_start_wins(attempt_service, attempt_repository, create_quiz):
    quiz_id, _ = await create_quiz([question(["A"])])
    real_open = attempt_repository.open_attempt
    calls = []

    async def contended_open(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise OpenSlotTakenError(USER_ID, QUIZ, quiz_id, Exception("unique constraint"))
        return await real_open(*args, **kwargs)

    attempt_repository.open_attempt = contended_open

    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    assert len(calls) == 2
    assert (await attempt_repository.get_attempt(started.attempt_id)).is_open


@pytest.mark.asyncio
async def test_start_gives_up_after_the_retry_limit(attempt_service, attempt_repository, create_quiz, app_config):
    quiz_id, _ = await create_quiz([question(["A"])])
    attempt_repository.open_attempt = AsyncMock(
        side_effect=OpenSlotTakenError(USER_ID, QUIZ, quiz_id, Exception("unique constraint"))
    )

    with pytest.raises(OpenSlotTakenError):
        await attempt_service.start(USER_ID, QUIZ, quiz_id)
    assert attempt_repository.open_attempt.await_count == app_config.engagement.start_retry_limit


@pytest.mark.asyncio
async def test_submit_quiz_scores_and_closes(attempt_service, attempt_repository, create_quiz):
    quiz_id, (q1, q2, q3) = await create_quiz(
        [question(["yes"], points=5), question(["no"], points=5), question(["maybe"], points=10)],
        passing_score=10,
    )
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    result = await attempt_service.submit_quiz(
        USER_ID, quiz_id, started.attempt_id, {str(q1): "yes", str(q2): "yes"}, time_taken=42
    )

    assert (result.score, result.max_score, result.percentage, result.passed) == (5, 20, 25, False)
    record = await attempt_repository.get_attempt(started.attempt_id)
    assert record.status == AttemptStatus.CLOSED
    assert record.completed_at is not None
    assert record.time_taken == 42
    assert record.answers == {str(q1): "yes", str(q2): "yes"}
    assert record.self_reported is False


@pytest.mark.asyncio
async def test_submit_quiz_accepts_option_ids(attempt_service, content_repository, create_quiz):
    quiz_id, (q1,) = await create_quiz([question(["Report it"], points=10)], passing_score=7)
    correct = await content_repository.get_correct_options(q1)
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    result = await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {q1: correct[0]["id"]})

    assert result.score == 10
    assert result.passed is True


@pytest.mark.asyncio
async def test_second_submit_is_rejected_without_changes(attempt_service, attempt_repository, create_quiz):
    quiz_id, (q1,) = await create_quiz([question(["Paris"], points=10)], passing_score=7)
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)
    await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {str(q1): "Paris"})
    before = await attempt_repository.get_attempt(started.attempt_id)

    with pytest.raises(InvalidAttemptError):
        await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {str(q1): "London"})

    after = await attempt_repository.get_attempt(started.attempt_id)
    assert after.score == before.score == 10
    assert after.completed_at == before.completed_at


@pytest.mark.asyncio
async def test_submit_rejects_foreign_and_unknown_attempts(attempt_service, create_quiz):
    quiz_id, (q1,) = await create_quiz([question(["A"])])
    other_quiz_id, _ = await create_quiz([question(["B"])])
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    with pytest.raises(InvalidAttemptError):
        await attempt_service.submit_quiz(USER_ID, quiz_id, 9999, {})
    with pytest.raises(InvalidAttemptError):
        await attempt_service.submit_quiz(OTHER_USER_ID, quiz_id, started.attempt_id, {})
    with pytest.raises(InvalidAttemptError):
        await attempt_service.submit_quiz(USER_ID, other_quiz_id, started.attempt_id, {})


@pytest.mark.asyncio
async def test_malformed_answers_leave_the_attempt_open(attempt_service, attempt_repository, create_quiz):
    quiz_id, _ = await create_quiz([question(["A"])])
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    with pytest.raises(MalformedInputError):
        await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, ["A"])

    assert (await attempt_repository.get_attempt(started.attempt_id)).is_open


@pytest.mark.asyncio
async def test_losing_a_concurrent_submit_raises(attempt_service, attempt_repository, create_quiz):
    quiz_id, (q1,) = await create_quiz([question(["A"])])
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)
    attempt_repository.close_attempt = AsyncMock(return_value=False)

    with pytest.raises(InvalidAttemptError):
        await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {str(q1): "A"})


@pytest.mark.asyncio
async def test_game_start_returns_configuration(attempt_service, create_game):
    game_id = await create_game()

    started = await attempt_service.start(USER_ID, GAME, game_id)

    assert started.game_data == {"emails": [{"id": 1, "phishing": True}]}


@pytest.mark.asyncio
async def test_game_submit_is_self_reported(attempt_service, attempt_repository, create_game):
    game_id = await create_game()
    started = await attempt_service.start(USER_ID, GAME, game_id)

    result = await attempt_service.submit_game(
        USER_ID, game_id, started.attempt_id, 80, 100, time_taken=30, game_result={"flagged": [1]}
    )

    assert result.self_reported is True
    assert result.passed is None
    assert result.percentage == 80
    record = await attempt_repository.get_attempt(started.attempt_id)
    assert record.self_reported is True
    assert record.answers == {"flagged": [1]}


@pytest.mark.asyncio
@pytest.mark.parametrize("score,max_score", [(-1, 10), ("lots", 10), (5, None), (True, 10)])
async def test_game_submit_rejects_bad_scores(attempt_service, attempt_repository, create_game, score, max_score):
    game_id = await create_game()
    started = await attempt_service.start(USER_ID, GAME, game_id)

    with pytest.raises(MalformedInputError):
        await attempt_service.submit_game(USER_ID, game_id, started.attempt_id, score, max_score)
    assert (await attempt_repository.get_attempt(started.attempt_id)).is_open


@pytest.mark.asyncio
async def test_results_summarize_closed_attempts(attempt_service, create_quiz):
    quiz_id, (q1,) = await create_quiz([question(["A"], points=10)], passing_score=7)

    with pytest.raises(NotFoundError):
        await attempt_service.get_results(USER_ID, QUIZ, quiz_id)

    for answer in ("B", "A"):
        started = await attempt_service.start(USER_ID, QUIZ, quiz_id)
        await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {str(q1): answer})
    # An open attempt is not a result
    await attempt_service.start(USER_ID, QUIZ, quiz_id)

    summary = await attempt_service.get_results(USER_ID, QUIZ, quiz_id)

    assert summary.total_attempts == 2
    assert summary.best_score == 10
    assert summary.assessment["id"] == quiz_id
    assert summary.best_time is None


@pytest.mark.asyncio
async def test_game_results_report_best_time(attempt_service, create_game):
    game_id = await create_game()
    for score, seconds in ((50, 90), (70, 40), (60, None)):
        started = await attempt_service.start(USER_ID, GAME, game_id)
        await attempt_service.submit_game(USER_ID, game_id, started.attempt_id, score, 100, time_taken=seconds)

    summary = await attempt_service.get_results(USER_ID, GAME, game_id)

    assert summary.best_score == 70
    assert summary.best_time == 40
    assert summary.total_attempts == 3


@pytest.mark.asyncio
async def test_history_is_paginated(attempt_service, create_quiz):
    quiz_id, (q1,) = await create_quiz([question(["A"])], title="Passwords")
    for _ in range(3):
        started = await attempt_service.start(USER_ID, QUIZ, quiz_id)
        await attempt_service.submit_quiz(USER_ID, quiz_id, started.attempt_id, {str(q1): "A"})

    first_page = await attempt_service.get_history(USER_ID, QUIZ, limit=2)
    second_page = await attempt_service.get_history(USER_ID, QUIZ, limit=2, offset=2)

    assert first_page.total == 3
    assert len(first_page.items) == 2
    assert first_page.has_more is True
    assert len(second_page.items) == 1
    assert second_page.has_more is False
    assert first_page.items[0]["quiz_title"] == "Passwords"

    with pytest.raises(MalformedInputError):
        await attempt_service.get_history(USER_ID, QUIZ, limit=2, offset=-1)


@pytest.mark.asyncio
async def test_leaderboard_ranks_by_score_then_time(attempt_service, create_game):
    game_id = await create_game()
    results = {
        "alice": (90, 50),
        "bob": (90, 50),
        "carol": (90, 30),
        "dave": (70, 10),
    }
    for user, (score, seconds) in results.items():
        started = await attempt_service.start(user, GAME, game_id)
        await attempt_service.submit_game(user, game_id, started.attempt_id, score, 100, time_taken=seconds)

    board = await attempt_service.get_leaderboard(game_id)

    assert [entry.user_id for entry in board][0] == "carol"
    assert [entry.rank for entry in board] == [1, 2, 2, 4]
    assert board[-1].user_id == "dave"


@pytest.mark.asyncio
async def test_clear_open_attempts_only_in_development(content_repository, attempt_repository, attempt_service,
                                                       create_quiz):
    quiz_id, _ = await create_quiz([question(["A"])])
    started = await attempt_service.start(USER_ID, QUIZ, quiz_id)

    with pytest.raises(AuthorizationError):
        await attempt_service.clear_open_attempts(USER_ID)

    dev_config = AppConfig(environment=EnvironmentConfig(env="development"))
    dev_service = AttemptLifecycleService(content_repository, attempt_repository, dev_config)
    assert await dev_service.clear_open_attempts(USER_ID) == 1
    assert await attempt_repository.get_attempt(started.attempt_id) is None

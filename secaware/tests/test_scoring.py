"""
Tests for quiz scoring: answer matching, aggregation and percentage rounding.
"""

import asyncio

import pytest

from secaware.assessments.models import ScoringUnit, percentage_of
from secaware.assessments.scoring import AnswerKey, evaluate_submission, matches, normalize_answers
from secaware.common.error_handling import DatabaseError, MalformedInputError


def key_lookup(keys):
    """Answer-key lookup over a dict of question id -> list of correct answer texts."""
    calls = []

    async def lookup(question_id):
        calls.append(question_id)
        return [
            {"id": question_id * 100 + position, "answer_text": text}
            for position, text in enumerate(keys.get(question_id, []))
        ]

    lookup.calls = calls
    return lookup


@pytest.mark.asyncio
async def test_single_correct_answer_scores_full_points():
    evaluation = await evaluate_submission(
        [ScoringUnit(id=1, points=10)],
        {"1": "Paris"},
        pass_threshold=7,
        lookup_correct_options=key_lookup({1: ["Paris"]}),
    )

    assert evaluation.score == 10
    assert evaluation.max_score == 10
    assert evaluation.percentage == 100
    assert evaluation.passed is True


@pytest.mark.asyncio
async def test_multi_select_awards_points_for_any_correct_value():
    evaluation = await evaluate_submission(
        [ScoringUnit(id=1, points=5)],
        {"1": ["A"]},
        pass_threshold=5,
        lookup_correct_options=key_lookup({1: ["A", "B"]}),
    )

    assert evaluation.score == 5
    assert evaluation.passed is True


@pytest.mark.asyncio
async def test_partial_submission_scores_only_answered_correct_units():
    units = [ScoringUnit(id=1, points=5), ScoringUnit(id=2, points=5), ScoringUnit(id=3, points=10)]
    lookup = key_lookup({1: ["yes"], 2: ["no"], 3: ["maybe"]})

    evaluation = await evaluate_submission(units, {"1": "yes", "2": "yes"}, pass_threshold=10,
                                           lookup_correct_options=lookup)

    assert evaluation.score == 5
    assert evaluation.max_score == 20
    assert evaluation.percentage == 25
    assert evaluation.passed is False
    # Unanswered questions never hit the answer-key store
    assert sorted(lookup.calls) == [1, 2]
    assert [outcome.answered for outcome in evaluation.outcomes] == [True, True, False]


@pytest.mark.asyncio
async def test_integer_keys_and_option_ids_are_accepted():
    evaluation = await evaluate_submission(
        [ScoringUnit(id=4, points=3)],
        {4: 400},
        pass_threshold=1,
        lookup_correct_options=key_lookup({4: ["Report it"]}),
    )

    assert evaluation.score == 3


@pytest.mark.asyncio
async def test_unknown_questions_are_ignored_and_score_stays_in_range():
    evaluation = await evaluate_submission(
        [ScoringUnit(id=1, points=2)],
        {"1": "right", "99": "right"},
        pass_threshold=2,
        lookup_correct_options=key_lookup({1: ["right"]}),
    )

    assert 0 <= evaluation.score <= evaluation.max_score == 2


@pytest.mark.asyncio
async def test_empty_submission_scores_zero():
    evaluation = await evaluate_submission(
        [ScoringUnit(id=1, points=2)], None, pass_threshold=1, lookup_correct_options=key_lookup({})
    )

    assert evaluation.score == 0
    assert evaluation.passed is False


@pytest.mark.asyncio
async def test_non_mapping_answers_are_rejected():
    with pytest.raises(MalformedInputError):
        await evaluate_submission(
            [ScoringUnit(id=1)], ["Paris"], pass_threshold=1, lookup_correct_options=key_lookup({})
        )


@pytest.mark.asyncio
async def test_failed_lookup_fails_the_whole_evaluation():
    async def failing_lookup(question_id):
        if question_id == 2:
            raise DatabaseError("connection lost")
        return [{"id": 1, "answer_text": "a"}]

    with pytest.raises(DatabaseError):
        await evaluate_submission(
            [ScoringUnit(id=1), ScoringUnit(id=2)],
            {"1": "a", "2": "b"},
            pass_threshold=1,
            lookup_correct_options=failing_lookup,
        )


@pytest.mark.asyncio
async def test_lookups_run_concurrently():
    started = []
    release = asyncio.Event()

    async def slow_lookup(question_id):
        started.append(question_id)
        if len(started) == 3:
            release.set()
        # Only returns once every lookup has been issued
        await asyncio.wait_for(release.wait(), timeout=1)
        return [{"id": question_id, "answer_text": "ok"}]

    evaluation = await evaluate_submission(
        [ScoringUnit(id=1), ScoringUnit(id=2), ScoringUnit(id=3)],
        {"1": "ok", "2": "ok", "3": "no"},
        pass_threshold=2,
        lookup_correct_options=slow_lookup,
    )

    assert evaluation.score == 2


def test_answer_key_matching_rules():
    key = AnswerKey([{"id": 7, "answer_text": "True"}, {"id": 8, "answer_text": "Report it"}])

    assert matches("Report it", key)
    assert matches(8, key)
    assert matches(True, key)
    assert matches(["nope", "Report it"], key)
    assert not matches("report it", key)
    assert not matches(9, key)
    assert not matches({"answer": "Report it"}, key)
    assert not matches(None, key)
    assert not matches("anything", AnswerKey([]))


def test_normalize_answers_keys_by_text():
    assert normalize_answers({1: "a", "2": "b"}) == {"1": "a", "2": "b"}
    assert normalize_answers(None) == {}
    with pytest.raises(MalformedInputError):
        normalize_answers("1=a")


@pytest.mark.parametrize("score,max_score,expected", [
    (10, 10, 100),
    (5, 20, 25),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (0, 0, 0),
])
def test_percentage_rounds_half_up(score, max_score, expected):
    assert percentage_of(score, max_score) == expected

"""
Scoring Evaluator

Scores a quiz submission against the stored answer keys. A question earns its
full points when the submitted value matches any correct option, or when a
submitted collection contains at least one correct option. There is no
partial credit and no negative marking.

Answer-key lookups for all questions are issued concurrently and awaited
together; if any lookup fails, the whole evaluation fails.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Set

from secaware.assessments.models import Evaluation, ScoringUnit, UnitOutcome
from secaware.common.error_handling import MalformedInputError
from secaware.common.logger import get_logger

logger = get_logger(__name__)

AnswerKeyLookup = Callable[[int], Awaitable[List[Dict[str, Any]]]]


def normalize_answers(answers: Any) -> Dict[str, Any]:
    """
    Validate the submission payload and key it by question id as text.

    JSON object keys arrive as strings while callers inside the process may
    use integers; both address the same question.

    Raises:
        MalformedInputError: If the payload is not a mapping
    """
    if answers is None:
        return {}
    if not isinstance(answers, Mapping):
        raise MalformedInputError(
            "Answers must map question ids to chosen options",
            details={"received_type": type(answers).__name__},
        )
    return {str(key): value for key, value in answers.items()}


class AnswerKey:
    """
    The correct options of one question.

    Text submissions match an option's answer text; integer submissions
    match an option's id.
    """

    def __init__(self, correct_options: Iterable[Dict[str, Any]]):
        self.texts: Set[str] = set()
        self.ids: Set[int] = set()
        for option in correct_options:
            if option.get("answer_text") is not None:
                self.texts.add(str(option["answer_text"]))
            if option.get("id") is not None:
                self.ids.add(int(option["id"]))

    def __bool__(self) -> bool:
        return bool(self.texts or self.ids)

    def accepts(self, value: Any) -> bool:
        if value is None or isinstance(value, Mapping):
            return False
        if isinstance(value, bool):
            return str(value).lower() in {text.lower() for text in self.texts}
        if isinstance(value, int):
            return value in self.ids
        return str(value) in self.texts


def matches(submitted: Any, key: AnswerKey) -> bool:
    """Any-match: a scalar must be correct; a collection must contain a correct value."""
    if submitted is None or not key:
        return False
    if isinstance(submitted, (list, tuple, set)):
        return any(key.accepts(item) for item in submitted)
    return key.accepts(submitted)


async def evaluate_submission(
    units: List[ScoringUnit],
    answers: Any,
    pass_threshold: float,
    lookup_correct_options: AnswerKeyLookup,
) -> Evaluation:
    """
    Score a submission.

    Args:
        units: The quiz's questions with their point values
        answers: Mapping of question id to the chosen option(s)
        pass_threshold: Minimum total score that passes
        lookup_correct_options: Coroutine returning a question's correct options

    Returns:
        Evaluation with score, max score, pass flag and per-question outcomes

    Raises:
        MalformedInputError: If ``answers`` is not a mapping
    """
    submitted = normalize_answers(answers)
    max_score = sum(unit.points for unit in units)

    answered_units = [unit for unit in units if submitted.get(str(unit.id)) is not None]
    answer_keys = await asyncio.gather(
        *(lookup_correct_options(unit.id) for unit in answered_units)
    )
    key_by_unit = {unit.id: AnswerKey(key) for unit, key in zip(answered_units, answer_keys)}

    outcomes = []
    for unit in units:
        if unit.id not in key_by_unit:
            outcomes.append(UnitOutcome(unit_id=unit.id, points=unit.points, awarded=0, answered=False))
            continue
        awarded = unit.points if matches(submitted[str(unit.id)], key_by_unit[unit.id]) else 0
        outcomes.append(UnitOutcome(unit_id=unit.id, points=unit.points, awarded=awarded, answered=True))

    score = sum(outcome.awarded for outcome in outcomes)
    unknown = set(submitted) - {str(unit.id) for unit in units}
    if unknown:
        logger.debug(f"Ignoring answers for unknown questions: {sorted(unknown)}")

    return Evaluation(
        score=score,
        max_score=max_score,
        passed=score >= pass_threshold,
        outcomes=outcomes,
    )

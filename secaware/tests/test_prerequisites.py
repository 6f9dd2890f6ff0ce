"""
Tests for prerequisite parsing, cycle detection and the start gate.
"""

import pytest

from secaware.common.error_handling import MalformedInputError, NotFoundError, PrerequisiteCycleError
from secaware.training.prerequisites import (
    PrerequisiteResolver,
    ensure_acyclic,
    find_cycle,
    parse_prerequisites,
    read_prerequisites,
)
from secaware.tests.conftest import USER_ID


@pytest.mark.parametrize("raw,expected", [
    ("[1, 2]", [1, 2]),
    ([3, 1], [3, 1]),
    ("[]", []),
    ("", []),
    (None, []),
    ([2, 2, 1], [2, 1]),
])
def test_parse_prerequisites_accepts_integer_lists(raw, expected):
    assert parse_prerequisites(raw) == expected


@pytest.mark.parametrize("raw", ["not json", '{"a": 1}', '"1"', "[1, \"2\"]", [True], [1.5], 7])
def test_parse_prerequisites_rejects_everything_else(raw):
    with pytest.raises(MalformedInputError):
        parse_prerequisites(raw)


def test_read_prerequisites_fails_open():
    assert read_prerequisites("{broken", module_id=3) == []
    assert read_prerequisites("[4]", module_id=3) == [4]


def test_find_cycle():
    assert find_cycle({1: [], 2: [1], 3: [2, 1]}) is None
    assert find_cycle({1: [1]}) == [1, 1]

    cycle = find_cycle({1: [2], 2: [3], 3: [1], 4: []})
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {1, 2, 3}


def test_find_cycle_from_a_start_node_ignores_unrelated_cycles():
    graph = {1: [2], 2: [], 3: [4], 4: [3]}
    assert find_cycle(graph, start=1) is None
    assert find_cycle(graph) is not None


def test_ensure_acyclic_names_the_cycle():
    with pytest.raises(PrerequisiteCycleError) as exc_info:
        ensure_acyclic({5: [6], 6: [5]}, start=5)
    assert exc_info.value.cycle == [5, 6, 5]
    assert exc_info.value.details["cycle"] == [5, 6, 5]


@pytest.mark.asyncio
async def test_module_without_prerequisites_can_always_start(training_repository, create_module):
    module_id = await create_module("Intro")

    check = await PrerequisiteResolver(training_repository).can_start(USER_ID, module_id)

    assert check.allowed is True
    assert check.blocked_by == []


@pytest.mark.asyncio
async def test_prerequisite_blocks_until_completed(training_repository, create_module):
    resolver = PrerequisiteResolver(training_repository)
    b = await create_module("B")
    a = await create_module("A", prerequisites=[b])

    assert (await resolver.can_start(USER_ID, a)).blocked_by == [b]

    await training_repository.mark_started(USER_ID, b)
    assert (await resolver.can_start(USER_ID, a)).blocked_by == [b]

    await training_repository.update_progress(USER_ID, b, {"status": "completed", "progress_percentage": 100})
    assert (await resolver.can_start(USER_ID, a)).allowed is True


@pytest.mark.asyncio
async def test_only_direct_prerequisites_are_checked(training_repository, create_module):
    a = await create_module("A")
    b = await create_module("B", prerequisites=[a])
    c = await create_module("C", prerequisites=[b])
    await training_repository.mark_started(USER_ID, a)
    await training_repository.update_progress(USER_ID, a, {"status": "completed"})

    check = await PrerequisiteResolver(training_repository).can_start(USER_ID, c)

    assert check.blocked_by == [b]


@pytest.mark.asyncio
async def test_blocked_by_keeps_declaration_order(training_repository, create_module):
    first = await create_module("First")
    second = await create_module("Second")
    third = await create_module("Third")
    target = await create_module("Target", prerequisites=[third, first, second])

    check = await PrerequisiteResolver(training_repository).can_start(USER_ID, target)

    assert check.blocked_by == [third, first, second]


@pytest.mark.asyncio
async def test_other_users_progress_does_not_count(training_repository, create_module):
    b = await create_module("B")
    a = await create_module("A", prerequisites=[b])
    await training_repository.mark_started("someone-else", b)
    await training_repository.update_progress("someone-else", b, {"status": "completed"})

    check = await PrerequisiteResolver(training_repository).can_start(USER_ID, a)

    assert check.allowed is False


@pytest.mark.asyncio
async def test_malformed_declaration_is_treated_as_none(training_repository, create_module):
    module_id = await create_module("Legacy", prerequisites="not-a-list")

    check = await PrerequisiteResolver(training_repository).can_start(USER_ID, module_id)

    assert check.allowed is True


@pytest.mark.asyncio
async def test_unknown_module_is_not_found(training_repository):
    with pytest.raises(NotFoundError):
        await PrerequisiteResolver(training_repository).can_start(USER_ID, 12345)

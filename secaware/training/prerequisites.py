"""
Prerequisite Resolver

Decides whether a user may start a training module. Only the module's direct
prerequisites are checked, and only a ``completed`` progress row satisfies
one. Edits to the prerequisite graph are validated here as well so that the
graph stays acyclic.
"""

import json
from typing import Any, Dict, Iterable, List, Optional

from secaware.common.error_handling import MalformedInputError, NotFoundError, PrerequisiteCycleError
from secaware.common.logger import get_logger
from secaware.training.models import PrerequisiteCheck, ProgressStatus
from secaware.training.repositories import SqlTrainingRepository, TrainingRepository

logger = get_logger(__name__)


def parse_prerequisites(raw: Any) -> List[int]:
    """
    Parse a prerequisite declaration strictly.

    Accepts JSON text or an already decoded list. Every element must be an
    integer module id; booleans are rejected even though they are ints.

    Raises:
        MalformedInputError: If the declaration is not a list of integers
    """
    if raw is None:
        return []
    value = raw
    if isinstance(raw, (str, bytes)):
        try:
            value = json.loads(raw) if raw else []
        except ValueError as e:
            raise MalformedInputError(
                "Prerequisites must be a JSON array of module ids",
                details={"prerequisites": raw if isinstance(raw, str) else raw.decode(errors="replace")},
                cause=e,
            ) from e

    if not isinstance(value, (list, tuple)):
        raise MalformedInputError(
            "Prerequisites must be a list of module ids",
            details={"received_type": type(value).__name__},
        )

    ids = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int):
            raise MalformedInputError(
                "Prerequisite ids must be integers",
                details={"invalid_value": repr(item)},
            )
        if item not in ids:
            ids.append(item)
    return ids


def read_prerequisites(raw: Any, module_id: Optional[int] = None) -> List[int]:
    """
    Parse a stored declaration, treating a malformed one as empty.

    Rows written before declarations were validated may hold anything; such a
    module is startable and a warning is logged.
    """
    try:
        return parse_prerequisites(raw)
    except MalformedInputError as e:
        logger.warning(f"Ignoring malformed prerequisites of module {module_id}: {e.message}")
        return []


def find_cycle(graph: Dict[int, Iterable[int]], start: Optional[int] = None) -> Optional[List[int]]:
    """
    Find a cycle in a prerequisite graph.

    Args:
        graph: Module id mapped to the ids it depends on
        start: Only search paths reachable from this module

    Returns:
        The cycle as a path that begins and ends on the same module, or None
    """
    visiting: List[int] = []
    on_path = set()
    done = set()

    def visit(node: int) -> Optional[List[int]]:
        if node in on_path:
            return visiting[visiting.index(node):] + [node]
        if node in done:
            return None
        visiting.append(node)
        on_path.add(node)
        for dependency in graph.get(node, ()):
            cycle = visit(dependency)
            if cycle:
                return cycle
        visiting.pop()
        on_path.discard(node)
        done.add(node)
        return None

    roots = [start] if start is not None else list(graph)
    for root in roots:
        cycle = visit(root)
        if cycle:
            return cycle
    return None


def ensure_acyclic(graph: Dict[int, Iterable[int]], start: Optional[int] = None) -> None:
    """Raise ``PrerequisiteCycleError`` if ``graph`` contains a cycle."""
    cycle = find_cycle(graph, start=start)
    if cycle:
        raise PrerequisiteCycleError(cycle)


class PrerequisiteResolver:
    """
    Checks a module's direct prerequisites against a user's progress.

    Args:
        repository: Training store
    """

    def __init__(self, repository: Optional[TrainingRepository] = None):
        self.repository = repository or SqlTrainingRepository()

    async def can_start(self, user_id: str, module_id: int) -> PrerequisiteCheck:
        """
        Check whether ``user_id`` has completed every prerequisite of ``module_id``.

        Progress for all prerequisites is fetched in one batched lookup.

        Raises:
            NotFoundError: If the module does not exist
        """
        module = await self.repository.get_module(module_id)
        if module is None:
            raise NotFoundError("Module", module_id)

        prerequisites = read_prerequisites(module.get("prerequisites"), module_id)
        if not prerequisites:
            return PrerequisiteCheck(module_id=module_id)

        statuses = await self.repository.get_progress_statuses(user_id, prerequisites)
        blocked_by = [
            prerequisite for prerequisite in prerequisites
            if statuses.get(prerequisite) != ProgressStatus.COMPLETED.value
        ]
        if blocked_by:
            logger.info(f"User {user_id} blocked from module {module_id} by incomplete prerequisites {blocked_by}")
        return PrerequisiteCheck(module_id=module_id, blocked_by=blocked_by)

    async def load_graph(self) -> Dict[int, List[int]]:
        """The whole prerequisite graph, with malformed declarations read as empty."""
        declarations = await self.repository.get_prerequisite_declarations()
        return {
            module_id: read_prerequisites(raw, module_id)
            for module_id, raw in declarations.items()
        }

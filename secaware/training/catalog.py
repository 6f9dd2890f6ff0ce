"""
Training Catalog

Browsing and administration of training modules. Prerequisite lists are
validated on every write: they must be integer ids of existing modules, may
not name the module itself, and must leave the module graph acyclic.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from secaware.assessments.catalog import parse_payload
from secaware.common.auth.roles import RoleProvider, StaticRoleProvider, require_admin
from secaware.common.config import AppConfig, get_config
from secaware.common.error_handling import NotFoundError, ValidationError
from secaware.common.logger import app_logger
from secaware.training.prerequisites import (
    PrerequisiteResolver,
    ensure_acyclic,
    parse_prerequisites,
    read_prerequisites,
)
from secaware.training.repositories import SqlTrainingRepository, TrainingRepository

logger = app_logger.getChild("training.catalog")


class ModuleSpec(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    category: str = "General Security"
    content_type: Optional[str] = None
    content_url: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    prerequisites: Any = None


class ModuleUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = None
    content_type: Optional[str] = None
    content_url: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    prerequisites: Any = None
    is_active: Optional[bool] = None


class TrainingCatalog:
    """
    Training module catalog.

    Args:
        repository: Training store
        roles: Role provider guarding writes
        config: Application configuration
    """

    def __init__(
        self,
        repository: Optional[TrainingRepository] = None,
        roles: Optional[RoleProvider] = None,
        config: Optional[AppConfig] = None,
    ):
        self.repository = repository or SqlTrainingRepository()
        self.roles = roles or StaticRoleProvider()
        self.config = config or get_config()
        self.resolver = PrerequisiteResolver(self.repository)

    async def list_modules(
        self,
        user_id: str,
        category: Optional[str] = None,
        content_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Active modules with the user's progress columns and decoded prerequisite ids."""
        modules = await self.repository.list_modules(
            user_id, filters={"category": category, "content_type": content_type}, search=search
        )
        for module in modules:
            module["prerequisites"] = read_prerequisites(module.get("prerequisites"), module["id"])
            if module.get("status") is None:
                module["status"] = "not_started"
                module["progress_percentage"] = 0
        return modules

    async def get_module(self, user_id: str, module_id: int) -> Dict[str, Any]:
        """
        An active module with the user's progress row and prerequisite descriptors.

        Raises:
            NotFoundError: If the module does not exist or is inactive
        """
        module = await self.repository.get_module(module_id)
        if module is None or not module["is_active"]:
            raise NotFoundError("Module", module_id)

        prerequisite_ids = read_prerequisites(module.get("prerequisites"), module_id)
        module["prerequisites"] = await self.repository.get_module_summaries(prerequisite_ids)
        module["progress"] = await self.repository.get_progress(user_id, module_id)
        check = await self.resolver.can_start(user_id, module_id)
        module["can_start"] = check.allowed
        module["blocked_by"] = check.blocked_by
        return module

    async def _validated_prerequisites(self, raw: Any, module_id: Optional[int] = None) -> List[int]:
        prerequisites = parse_prerequisites(raw)
        if module_id is not None and module_id in prerequisites:
            raise ValidationError(
                "A module cannot be its own prerequisite",
                details={"module_id": module_id},
            )
        if prerequisites:
            existing = {m["id"] for m in await self.repository.get_module_summaries(prerequisites)}
            missing = [p for p in prerequisites if p not in existing]
            if missing:
                raise ValidationError(
                    "Prerequisites reference unknown modules",
                    details={"unknown_modules": missing},
                )
        return prerequisites

    async def create_module(self, user_id: str, data: Union[ModuleSpec, Dict[str, Any]]) -> int:
        """
        Create a module.

        A new module has no dependents, so its prerequisites cannot close a
        cycle; only existence is checked.

        Raises:
            AuthorizationError: If the user may not administer content
            MalformedInputError: If prerequisites are not a list of integers
            ValidationError: If a prerequisite does not exist
        """
        await require_admin(self.roles, user_id, "create training modules")
        spec = parse_payload(ModuleSpec, data)

        values = spec.model_dump()
        values["prerequisites"] = await self._validated_prerequisites(spec.prerequisites)
        values["content_type"] = spec.content_type or self.config.training.default_content_type
        if values["duration"] is None:
            values["duration"] = self.config.training.default_duration_minutes
        values["created_by"] = user_id

        module_id = await self.repository.create_module(values)
        logger.info(f"Training module {module_id} created by user {user_id}")
        return module_id

    async def update_module(self, user_id: str, module_id: int, data: Union[ModuleUpdate, Dict[str, Any]]) -> None:
        """
        Update a module.

        Raises:
            NotFoundError: If the module does not exist
            PrerequisiteCycleError: If the new prerequisites would create a cycle
        """
        await require_admin(self.roles, user_id, "update training modules")
        spec = parse_payload(ModuleUpdate, data)
        if await self.repository.get_module(module_id) is None:
            raise NotFoundError("Module", module_id)

        values = spec.model_dump(exclude_none=True)
        if "prerequisites" in values:
            prerequisites = await self._validated_prerequisites(spec.prerequisites, module_id)
            graph = await self.resolver.load_graph()
            graph[module_id] = prerequisites
            ensure_acyclic(graph, start=module_id)
            values["prerequisites"] = prerequisites

        if not await self.repository.update_module(module_id, values):
            raise NotFoundError("Module", module_id)
        logger.info(f"Training module {module_id} updated by user {user_id}")

    async def delete_module(self, user_id: str, module_id: int) -> str:
        """
        Deactivate a module with progress rows, delete one without. Returns the action taken.

        Raises:
            NotFoundError: If the module does not exist
            ValidationError: If other modules still list it as a prerequisite
        """
        await require_admin(self.roles, user_id, "delete training modules")
        if await self.repository.get_module(module_id) is None:
            raise NotFoundError("Module", module_id)

        graph = await self.resolver.load_graph()
        dependents = sorted(other for other, prerequisites in graph.items() if module_id in prerequisites)
        if dependents:
            raise ValidationError(
                f"Module {module_id} is a prerequisite of other modules",
                details={"module_id": module_id, "dependent_modules": dependents},
            )

        progress_count = await self.repository.count_progress(module_id)
        if progress_count > 0:
            await self.repository.update_module(module_id, {"is_active": False})
            logger.info(
                f"Training module {module_id} deactivated by user {user_id} "
                f"({progress_count} progress row(s) reference it)"
            )
            return "deactivated"

        await self.repository.delete_module(module_id)
        logger.info(f"Training module {module_id} deleted by user {user_id}")
        return "deleted"

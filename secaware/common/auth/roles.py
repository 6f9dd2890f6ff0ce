"""
Role lookup used to guard catalog writes.

Identity and role storage live outside this service; the engine only needs
to know whether a user may administer content.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from secaware.common.error_handling import AuthorizationError


class RoleProvider(ABC):
    """Answers role questions about a user id."""

    @abstractmethod
    async def can_administer(self, user_id: str) -> bool:
        """Whether ``user_id`` may create, edit or delete assessments and modules."""


class StaticRoleProvider(RoleProvider):
    """Role provider backed by a fixed set of administrator ids."""

    def __init__(self, admin_user_ids: Optional[Iterable[str]] = None):
        self.admin_user_ids = frozenset(admin_user_ids or ())

    async def can_administer(self, user_id: str) -> bool:
        return user_id in self.admin_user_ids


async def require_admin(roles: RoleProvider, user_id: str, action: str) -> None:
    """Raise ``AuthorizationError`` unless ``user_id`` may administer content."""
    if not await roles.can_administer(user_id):
        raise AuthorizationError(
            f"User {user_id} is not allowed to {action}",
            details={"user_id": user_id, "action": action},
        )

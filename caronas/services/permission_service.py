"""
Permission Service

Role checks injected into the reservation engine and the admin endpoints.
Moderators and admins may delete any ride, remove passengers from rides
they do not drive, list users and ban them. Role changes and the admin log
are reserved to admins.
"""

from typing import Optional

from caronas.models.user import UserRole, has_permission
from caronas.services.user_service import UserService

PRIVILEGED_ROLES = {UserRole.ADMIN.value, UserRole.MODERATOR.value}


class PermissionService:
    """Answers privilege questions from the user's stored role."""

    def __init__(self, user_service: Optional[UserService] = None):
        self.user_service = user_service or UserService()

    async def is_privileged(self, user_id: str) -> bool:
        user = await self.user_service.get_user(user_id)
        return user is not None and user.role in PRIVILEGED_ROLES

    async def is_banned(self, user_id: str) -> bool:
        user = await self.user_service.get_user(user_id)
        return user is not None and user.banned

    async def can_delete_ride(self, user_id: str) -> bool:
        return has_permission(await self.user_service.get_user(user_id), "rides:delete")

    async def can_manage_passengers(self, user_id: str) -> bool:
        return has_permission(
            await self.user_service.get_user(user_id), "rides:manage_passengers"
        )

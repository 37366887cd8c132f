"""User Service - Profile storage, role management and bans."""

import logging
import re
from typing import List, Optional

from caronas.config import settings
from caronas.database import get_db, store_guard
from caronas.models.admin_log import AdminAction
from caronas.models.user import (
    DISPLAY_NAME_MAX_LENGTH,
    User,
    UserRole,
    UserUpdate,
    has_permission,
)
from caronas.services.audit_service import AuditService
from caronas.utils.exceptions import PermissionDeniedError, UserNotFoundError
from caronas.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)

ROLE_RANK = {
    UserRole.USER.value: 0,
    UserRole.MODERATOR.value: 1,
    UserRole.ADMIN.value: 2,
}

DEFAULT_DISPLAY_NAME = "Usuário"


def display_name_from_claims(claims: dict) -> str:
    """Name for a new profile: token name, email local part, phone, or a default."""
    email = claims.get("email") or ""
    for candidate in (claims.get("name"), email.split("@")[0], claims.get("phone_number")):
        if candidate and candidate.strip():
            return candidate.strip()[:DISPLAY_NAME_MAX_LENGTH]
    return DEFAULT_DISPLAY_NAME


class UserService:
    """
    User profile management.

    Users are keyed by the Firebase UID; profiles are created on first
    authenticated request. Role changes and bans are written to the admin
    log.
    """

    def __init__(self, audit: Optional[AuditService] = None):
        self.audit = audit or AuditService()

    async def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        db = get_db()
        with store_guard("user lookup"):
            doc = await db.users.find_one({"user_id": user_id}, {"_id": 0})
        return User(**doc) if doc else None

    async def ensure_user(self, claims: dict) -> User:
        """
        Get or create the user described by verified token claims.

        Emails listed in ADMIN_EMAILS are promoted to admin the first time
        they are seen, and again if an older profile lost the role. Phone
        and anonymous sign-ins carry no email.
        """
        db = get_db()
        uid = claims["uid"]
        email = (claims.get("email") or "").lower() or None
        is_configured_admin = email is not None and email in settings.admin_emails_list

        existing = await self.get_user(uid)
        if existing:
            if is_configured_admin and existing.role != UserRole.ADMIN:
                with store_guard("admin promotion"):
                    await db.users.update_one(
                        {"user_id": uid},
                        {"$set": {"role": UserRole.ADMIN.value, "updated_at": utc_now()}},
                    )
                logger.info(f"Promoted configured admin {email}")
                return existing.model_copy(update={"role": UserRole.ADMIN.value})
            return existing

        user = User(
            user_id=uid,
            email=email,
            display_name=display_name_from_claims(claims),
            role=UserRole.ADMIN if is_configured_admin else UserRole.USER,
        )
        with store_guard("user insert"):
            # Upsert so two first requests from the same user cannot collide
            await db.users.update_one(
                {"user_id": uid},
                {"$setOnInsert": user.model_dump()},
                upsert=True,
            )
        logger.info(f"Created user {uid} with role {user.role}")
        return await self.get_user(uid) or user

    async def update_profile(self, user_id: str, data: UserUpdate) -> User:
        """Update the editable profile fields."""
        db = get_db()
        changes = data.model_dump(exclude_none=True)
        if changes:
            changes["updated_at"] = utc_now()
            with store_guard("profile update"):
                await db.users.update_one({"user_id": user_id}, {"$set": changes})

        user = await self.get_user(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    async def _require_user(self, user_id: str) -> User:
        user = await self.get_user(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    # =========================================================================
    # Administration
    # =========================================================================

    async def list_users(
        self,
        actor: User,
        search: Optional[str] = None,
        banned: Optional[bool] = None,
        limit: int = 50,
        skip: int = 0,
    ) -> List[User]:
        """Users for the admin panel, newest first. Admins and moderators only."""
        if not has_permission(actor, "users:list"):
            raise PermissionDeniedError("Only administrators and moderators can list users.")

        query: dict = {}
        if search and search.strip():
            pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
            query["$or"] = [{"display_name": pattern}, {"email": pattern}]
        if banned is not None:
            query["banned"] = True if banned else {"$ne": True}

        db = get_db()
        with store_guard("user listing"):
            cursor = db.users.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit)
            return [User(**doc) async for doc in cursor]

    async def set_role(self, actor: User, user_id: str, role: UserRole) -> User:
        """Change a user's role. Admin only; admins cannot demote themselves."""
        if not has_permission(actor, "users:set_role"):
            raise PermissionDeniedError("Only administrators can change roles.")
        role = UserRole(role).value
        if actor.user_id == user_id and role != UserRole.ADMIN.value:
            raise PermissionDeniedError("Administrators cannot demote themselves.")

        target = await self._require_user(user_id)
        if target.role == role:
            return target

        db = get_db()
        with store_guard("role update"):
            await db.users.update_one(
                {"user_id": user_id},
                {"$set": {"role": role, "updated_at": utc_now()}},
            )

        promoted = ROLE_RANK[role] > ROLE_RANK[target.role]
        await self.audit.log_admin_action(
            actor,
            AdminAction.PROMOTE_USER if promoted else AdminAction.DEMOTE_USER,
            user_id,
            before_state={"role": target.role},
            after_state={"role": role},
        )
        logger.info(f"{actor.user_id} set role of {user_id} to {role}")
        return await self._require_user(user_id)

    async def ban_user(self, actor: User, user_id: str, reason: str) -> User:
        """
        Ban a user with a reason.

        Moderators may ban regular users; banning a moderator or an admin
        takes an admin. Nobody can ban themselves.
        """
        if not has_permission(actor, "users:ban"):
            raise PermissionDeniedError("You do not have permission to ban users.")
        if actor.user_id == user_id:
            raise PermissionDeniedError("You cannot ban yourself.")

        target = await self._require_user(user_id)
        if target.role != UserRole.USER and actor.role != UserRole.ADMIN:
            raise PermissionDeniedError("Only administrators can ban moderators or administrators.")

        now = utc_now()
        db = get_db()
        with store_guard("user ban"):
            await db.users.update_one(
                {"user_id": user_id},
                {"$set": {
                    "banned": True,
                    "ban_reason": reason,
                    "banned_at": now,
                    "banned_by": actor.user_id,
                    "updated_at": now,
                }},
            )

        await self.audit.log_admin_action(
            actor,
            AdminAction.BAN_USER,
            user_id,
            before_state={"banned": target.banned},
            after_state={"banned": True},
            metadata={"reason": reason},
        )
        logger.info(f"{actor.user_id} banned {user_id}: {reason}")
        return await self._require_user(user_id)

    async def unban_user(self, actor: User, user_id: str) -> User:
        """Lift a ban."""
        if not has_permission(actor, "users:ban"):
            raise PermissionDeniedError("You do not have permission to unban users.")

        target = await self._require_user(user_id)

        db = get_db()
        with store_guard("user unban"):
            await db.users.update_one(
                {"user_id": user_id},
                {"$set": {
                    "banned": False,
                    "ban_reason": None,
                    "banned_at": None,
                    "banned_by": None,
                    "updated_at": utc_now(),
                }},
            )

        await self.audit.log_admin_action(
            actor,
            AdminAction.UNBAN_USER,
            user_id,
            before_state={"banned": target.banned, "ban_reason": target.ban_reason},
            after_state={"banned": False},
        )
        logger.info(f"{actor.user_id} unbanned {user_id}")
        return await self._require_user(user_id)

"""Audit Service - Admin log of role changes and bans."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from caronas.database import get_db, store_guard
from caronas.models.admin_log import AdminAction, AdminLog
from caronas.models.user import User
from caronas.utils.timezone_utils import utc_now

logger = logging.getLogger(__name__)


class AuditService:
    """
    Audit logging service.

    Every moderation action (promotion, demotion, ban, unban) is written
    to the admin_logs collection by the service that performs it.
    """

    async def log_admin_action(
        self,
        actor: User,
        action: AdminAction,
        target_id: str,
        before_state: Optional[Dict[str, Any]] = None,
        after_state: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AdminLog:
        """Record one admin action."""
        db = get_db()

        entry = AdminLog(
            log_id=str(uuid.uuid4()),
            timestamp=utc_now(),
            actor_id=actor.user_id,
            actor_email=actor.email,
            action=action,
            target_id=target_id,
            before_state=before_state,
            after_state=after_state,
            metadata=metadata,
        )

        with store_guard("admin log insert"):
            await db.admin_logs.insert_one(entry.model_dump())

        logger.info(f"[admin] {actor.user_id} {entry.action} {target_id}")
        return entry

    async def get_logs(
        self,
        limit: int = 100,
        action: Optional[AdminAction] = None,
        target_id: Optional[str] = None,
    ) -> List[AdminLog]:
        """Most recent admin log entries, newest first."""
        db = get_db()

        query: Dict[str, Any] = {}
        if action:
            query["action"] = AdminAction(action).value
        if target_id:
            query["target_id"] = target_id

        with store_guard("admin log listing"):
            cursor = db.admin_logs.find(query, {"_id": 0}).sort("timestamp", -1).limit(limit)
            return [AdminLog(**doc) async for doc in cursor]

    async def get_user_history(self, user_id: str, limit: int = 50) -> List[AdminLog]:
        """All entries where the user acted or was acted upon."""
        db = get_db()

        with store_guard("admin log history"):
            cursor = (
                db.admin_logs.find(
                    {"$or": [{"actor_id": user_id}, {"target_id": user_id}]}, {"_id": 0}
                )
                .sort("timestamp", -1)
                .limit(limit)
            )
            return [AdminLog(**doc) async for doc in cursor]

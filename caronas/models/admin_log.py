"""Admin Log Model - Audit trail of moderation actions."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AdminAction(str, Enum):
    """Actions recorded in the admin log."""
    PROMOTE_USER = "promote_user"
    DEMOTE_USER = "demote_user"
    BAN_USER = "ban_user"
    UNBAN_USER = "unban_user"


class AdminLog(BaseModel):
    """
    Admin log entry for MongoDB.

    Every role change and ban decision is recorded with the state before
    and after it, so admins can review who did what to whom.

    Fields:
    - log_id: Unique UUID for the log entry
    - timestamp: When the action occurred
    - actor_id: User ID of the admin or moderator
    - actor_email: Email of the actor
    - action: One of AdminAction
    - target_id: User ID the action was applied to
    - before_state / after_state: Changed fields
    - metadata: Additional context (ban reason)
    """
    log_id: str = Field(..., description="Unique log ID")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actor_id: str = Field(..., description="Actor's ID")
    actor_email: Optional[str] = Field(None, description="Actor's email")
    action: AdminAction
    target_id: str
    before_state: Optional[Dict[str, Any]] = Field(None)
    after_state: Optional[Dict[str, Any]] = Field(None)
    metadata: Optional[Dict[str, Any]] = Field(None)

    class Config:
        use_enum_values = True

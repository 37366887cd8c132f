"""
Admin Router

User moderation for admins and moderators: user listing, bans and the
admin log.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from caronas.dependencies import get_audit_service, get_current_user, get_user_service
from caronas.models.admin_log import AdminAction, AdminLog
from caronas.models.user import BanUserRequest, User, has_permission
from caronas.services.audit_service import AuditService
from caronas.services.user_service import UserService
from caronas.utils.exceptions import PermissionDeniedError


router = APIRouter()


def require_log_access(user: User) -> None:
    if not has_permission(user, "logs:read"):
        raise PermissionDeniedError("Only administrators can read the admin log.")


# =============================================================================
# User Management Endpoints
# =============================================================================

@router.get("/users", response_model=List[User])
async def list_users(
    search: Optional[str] = Query(None, max_length=100),
    banned: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """List users, newest first. Admins and moderators only."""
    return await user_service.list_users(
        current_user, search=search, banned=banned, limit=limit, skip=skip
    )


@router.post("/users/{user_id}/ban", response_model=User)
async def ban_user(
    user_id: str,
    request: BanUserRequest,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """Ban a user. The reason is shown on the admin panel and logged."""
    return await user_service.ban_user(current_user, user_id, request.reason)


@router.post("/users/{user_id}/unban", response_model=User)
async def unban_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """Lift a ban."""
    return await user_service.unban_user(current_user, user_id)


@router.get("/users/{user_id}/history", response_model=List[AdminLog])
async def get_user_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service),
):
    """Admin log entries where the user acted or was acted upon."""
    require_log_access(current_user)
    return await audit_service.get_user_history(user_id, limit)


# =============================================================================
# Admin Log
# =============================================================================

@router.get("/logs", response_model=List[AdminLog])
async def get_logs(
    action: Optional[AdminAction] = None,
    limit: int = Query(100, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service),
):
    """Recent admin actions. Admins only."""
    require_log_access(current_user)
    return await audit_service.get_logs(limit=limit, action=action)

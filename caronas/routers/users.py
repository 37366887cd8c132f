"""
Users Router

Profile endpoints and role management.
"""

from fastapi import APIRouter, Depends

from caronas.dependencies import get_current_user, get_user_service
from caronas.models.user import RoleUpdate, User, UserUpdate
from caronas.services.user_service import UserService


router = APIRouter()


@router.get("/me", response_model=User)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user's profile."""
    return current_user


@router.patch("/me", response_model=User)
async def update_me(
    data: UserUpdate,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """Update display name or phone."""
    return await user_service.update_profile(current_user.user_id, data)


@router.put("/{user_id}/role", response_model=User)
async def set_role(
    user_id: str,
    data: RoleUpdate,
    current_user: User = Depends(get_current_user),
    user_service: UserService = Depends(get_user_service),
):
    """Change a user's role. Admin only."""
    return await user_service.set_role(current_user, user_id, data.role)

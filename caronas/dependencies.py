"""
Authentication Dependencies

FastAPI dependencies for authentication and service wiring.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from caronas.models.user import User
from caronas.services.audit_service import AuditService
from caronas.services.auth_service import AuthService
from caronas.services.completion_service import CompletionService
from caronas.services.rating_service import RatingService
from caronas.services.reservation_service import ReservationService
from caronas.services.ride_service import RideService
from caronas.services.user_service import UserService


# =============================================================================
# Service Providers
# =============================================================================
#
# Routers depend on these instead of module-level instances so tests can
# swap them through app.dependency_overrides.

@lru_cache()
def get_auth_service() -> AuthService:
    return AuthService()


@lru_cache()
def get_audit_service() -> AuditService:
    return AuditService()


@lru_cache()
def get_user_service() -> UserService:
    return UserService(audit=get_audit_service())


@lru_cache()
def get_ride_service() -> RideService:
    return RideService()


@lru_cache()
def get_reservation_service() -> ReservationService:
    return ReservationService()


@lru_cache()
def get_completion_service() -> CompletionService:
    return CompletionService()


@lru_cache()
def get_rating_service() -> RatingService:
    return RatingService()


# =============================================================================
# Authentication
# =============================================================================

async def authenticate_token(
    token: str,
    auth_service: AuthService,
    user_service: UserService,
) -> Optional[User]:
    """Resolve a raw Firebase token to a user, or None if it does not verify."""
    claims = auth_service.verify_firebase_token(token)
    if not claims:
        return None
    return await user_service.ensure_user(claims)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    auth_service: AuthService = Depends(get_auth_service),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """
    Get current authenticated user from Firebase token.

    SECURITY: This is the primary authentication gate.
    All protected endpoints should depend on this.

    Expects Authorization header: Bearer <firebase_id_token>
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization format. Use: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = await authenticate_token(authorization[7:], auth_service, user_service)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return user


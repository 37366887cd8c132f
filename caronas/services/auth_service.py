"""
Authentication Service

Firebase Admin SDK integration for token verification.
"""

import logging
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth, credentials

from caronas.config import settings

logger = logging.getLogger(__name__)


# =============================================================================
# Firebase Initialization
# =============================================================================

_firebase_app = None


def _init_firebase():
    """
    Initialize Firebase Admin SDK.

    SECURITY: The service account credentials must be kept secure.
    Never log or expose the credentials.
    """
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    creds = settings.firebase_credentials
    if creds is None:
        raise RuntimeError(
            "Firebase credentials not configured. "
            "Set FIREBASE_SERVICE_ACCOUNT_JSON or FIREBASE_SERVICE_ACCOUNT_PATH in .env"
        )

    cred = credentials.Certificate(creds)
    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    _firebase_app = firebase_admin.initialize_app(cred, options)
    return _firebase_app


class AuthService:
    """
    Authentication service for Firebase token verification.

    SECURITY: The uid of a verified token is trusted as driver, passenger
    and rater id everywhere in the engine.
    """

    def __init__(self):
        """Initialize Firebase on first use."""
        try:
            _init_firebase()
        except (RuntimeError, ValueError) as e:
            # Allow startup without credentials (tests, local tooling)
            logger.warning(f"Firebase initialization failed: {e}")

    def verify_firebase_token(self, id_token: str) -> Optional[dict]:
        """
        Verify a Firebase ID token and return the decoded claims.

        Args:
            id_token: Firebase ID token from client

        Returns:
            Decoded token claims if valid, None otherwise

        Token claims include:
        - uid: Firebase UID
        - email: User's email
        - name: Display name
        """
        try:
            return firebase_auth.verify_id_token(id_token)
        except (
            firebase_auth.InvalidIdTokenError,
            firebase_auth.UserDisabledError,
            firebase_auth.CertificateFetchError,
            ValueError,
        ) as e:
            logger.info(f"Rejected Firebase token: {type(e).__name__}")
            return None

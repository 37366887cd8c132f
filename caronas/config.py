import json
import os
import base64
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==========================================================================
    # Firebase Configuration
    # ==========================================================================
    firebase_service_account_json: Optional[str] = None
    firebase_service_account_path: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # ==========================================================================
    # MongoDB Configuration
    # ==========================================================================
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "caronas"

    # ==========================================================================
    # Redis Configuration (change feed)
    # ==========================================================================
    redis_url: str = "redis://localhost:6379/0"

    # ==========================================================================
    # Administration
    # ==========================================================================
    admin_emails: str = ""  # Promoted to admin on first login

    @property
    def admin_emails_list(self) -> List[str]:
        """Parse comma-separated admin emails into list."""
        return [
            e.strip().lower()
            for e in self.admin_emails.split(",")
            if e.strip()
        ]

    # ==========================================================================
    # Reservation Engine
    # ==========================================================================
    default_destination: str = "ICEA - UFVJM"
    transaction_max_attempts: int = 5
    transaction_retry_base_delay_seconds: float = 0.05

    # ==========================================================================
    # Ratings
    # ==========================================================================
    rating_request_ttl_days: int = 7

    # ==========================================================================
    # Scheduler
    # ==========================================================================
    scheduler_enabled: bool = True
    rating_expiry_sweep_minutes: int = 60

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    api_v1_str: str = "/api/v1"
    log_level: str = "INFO"
    cors_origins: str = "*"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into list."""
        if self.cors_origins == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # ==========================================================================
    # Computed Properties
    # ==========================================================================

    @property
    def firebase_credentials(self) -> Optional[dict]:
        """
        Get Firebase credentials as dict.

        Supports:
        1. File path (FIREBASE_SERVICE_ACCOUNT_PATH)
        2. JSON string (FIREBASE_SERVICE_ACCOUNT_JSON)
        3. Base64 encoded JSON string (FIREBASE_SERVICE_ACCOUNT_JSON)
        """
        if self.firebase_service_account_path:
            if os.path.exists(self.firebase_service_account_path):
                try:
                    with open(self.firebase_service_account_path, "r") as f:
                        return json.load(f)
                except (OSError, json.JSONDecodeError) as e:
                    logger.error(f"Error reading Firebase credentials file: {e}")
                    return None

        if self.firebase_service_account_json:
            content = self.firebase_service_account_json.strip()

            if content.startswith("{"):
                try:
                    return json.loads(content)
                except json.JSONDecodeError:
                    pass  # Move to Base64 attempt

            try:
                decoded = base64.b64decode(content).decode("utf-8")
                return json.loads(decoded)
            except (ValueError, UnicodeDecodeError):
                logger.error(
                    "Failed to decode FIREBASE_SERVICE_ACCOUNT_JSON (Invalid JSON or Base64)"
                )
                return None

        return None

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading env vars on every request.
    """
    return Settings()


# Convenience export
settings = get_settings()

# chefdeck/core/config.py
import os
from pydantic_settings import BaseSettings
from pydantic import validator
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from .env"""

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///./chefdeck.db"

    @validator("DATABASE_URL")
    def validate_database_url(cls, v):
        """Ensure database URL is safe for current environment"""
        env = os.getenv("ENVIRONMENT", "development").lower()
        if env == "production" and ("localhost" in v or v.startswith("sqlite")):
            raise ValueError("🚨 Production environment cannot use a local database!")
        return v

    # === Redis (draft store) ===
    REDIS_URL: Optional[str] = None
    DRAFT_KEY_TTL_SECONDS: int = 7 * 24 * 3600

    # === API ===
    API_PREFIX: str = "/api/v1"
    API_BASE_URL: str = "http://localhost:9106/api/v1"
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    # === Tenancy ===
    TENANT_HEADER: str = "x-bot-id"
    TENANT_QUERY_PARAM: str = "bot_id"
    DEFAULT_TENANT: str = "default"

    # === CORS ===
    ALLOWED_ORIGINS: List[str] = ["*"]
    ALLOWED_METHODS: List[str] = ["GET", "POST", "DELETE", "OPTIONS"]
    ALLOWED_HEADERS: List[str] = ["Origin", "X-Requested-With", "Content-Type", "Accept", "x-bot-id"]

    # === Sync client ===
    SYNC_GATE_SECONDS: float = 3.0
    DEBOUNCE_SECONDS: float = 0.8
    POLL_INTERVAL_SECONDS: float = 7.0

    # === System ===
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    TIMEZONE: str = "Europe/Moscow"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


# Create a global settings instance
settings = Settings()

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    PUBLIC_SITE_URL: str = "http://localhost:3000"
    PUBLIC_API_URL: str = "http://localhost:8000"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800

    # Auth (admin bearer tokens)
    AUTH_JWT_SECRET: str = "test-jwt-secret"

    # Asset storage (public bucket/CDN for bare storage keys)
    ASSET_BASE_URL: Optional[str] = None

    # Stripe
    STRIPE_SECRET_KEY: str = ""

    # Prodigi
    PRODIGI_API_KEY: str = ""
    PRODIGI_API_URL: str = "https://api.sandbox.prodigi.com/v4.0"
    PRODIGI_CALLBACK_URL: Optional[str] = None
    PRODIGI_TIMEOUT_SECONDS: float = 30.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v

    @property
    def prodigi_callback_url(self) -> str:
        """Callback URL handed to Prodigi with every order."""
        if self.PRODIGI_CALLBACK_URL:
            return self.PRODIGI_CALLBACK_URL
        return f"{self.PUBLIC_API_URL.rstrip('/')}/webhooks/prodigi"


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()

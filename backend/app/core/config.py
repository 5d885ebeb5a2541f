"""Application configuration powered by Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global application settings loaded from environment variables."""

    PROJECT_NAME: str = Field(default="Media Vault")
    VERSION: str = Field(default="0.1.0")
    LOG_LEVEL: str = Field(default="INFO")

    DATABASE_URL: str = Field(default="postgresql+psycopg://postgres:postgres@db:5432/postgres")

    CLOUDINARY_CLOUD_NAME: str | None = Field(default=None)
    CLOUDINARY_API_KEY: str | None = Field(default=None)
    CLOUDINARY_API_SECRET: str | None = Field(default=None)
    CLOUDINARY_VIDEO_FOLDER: str = Field(default="vault-videos")
    CLOUDINARY_IMAGE_FOLDER: str = Field(default="images")
    CLOUDINARY_CHUNK_SIZE: int = Field(default=20 * 1024 * 1024)

    CLERK_SECRET_KEY: str | None = Field(default=None)
    CLERK_API_URL: str = Field(default="https://api.clerk.com")
    CLERK_JWKS_URL: str | None = Field(default=None)
    CLERK_JWT_KEY: str | None = Field(default=None)
    CLERK_AUTHORIZED_PARTIES: tuple[str, ...] = Field(default=())
    CLERK_METADATA_CLAIM: str = Field(default="publicMetadata")
    CLERK_TIMEOUT: float = Field(default=10.0)
    CLERK_CLOCK_SKEW: int = Field(default=5)

    WEBHOOK_SECRET: str | None = Field(default=None)

    SESSION_COOKIE_NAME: str = Field(default="__session")

    SIGN_IN_PATH: str = Field(default="/sign-in")
    SIGN_UP_PATH: str = Field(default="/sign-up")
    ONBOARDING_PATH: str = Field(default="/onboarding")
    HOME_PATH: str = Field(default="/home")
    PUBLIC_PATHS: tuple[str, ...] = Field(
        default=("/", "/identity/webhook", "/admin/health", "/admin/metrics")
    )
    API_PREFIXES: tuple[str, ...] = Field(default=("/content", "/identity"))

    FRONTEND_URL: str = Field(default="http://localhost:3000")

    IMAGE_MAX_BYTES: int = Field(default=10 * 1024 * 1024)
    VIDEO_MAX_BYTES: int = Field(default=100 * 1024 * 1024)

    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_UPLOAD: str = Field(default="12/minute")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> Settings:
    """Return cached settings instance to avoid repeated parsing."""

    if overrides:
        return Settings(**overrides)
    return Settings()


settings = get_settings()

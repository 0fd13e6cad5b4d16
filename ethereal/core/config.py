"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_NAME: str = "Ethereal"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENV: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Persistence gateway
    GATEWAY_BACKEND: Literal["sql", "rest", "memory"] = "sql"
    ROADMAP_COLLECTION: str = "roadmap"

    # Database (sql backend)
    DATABASE_URL: str = "sqlite+aiosqlite:///./ethereal.db"
    DATABASE_ECHO: bool = False

    # Hosted table API (rest backend)
    REST_URL: str | None = None
    REST_API_KEY: str | None = None
    REST_TIMEOUT: float = 10.0

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENV == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

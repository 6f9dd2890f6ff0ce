"""Application configuration module."""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./secaware.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    CREATE_SCHEMA_ON_STARTUP: bool = True

    # Logging settings
    # Level, JSON output and log file come from LoggingConfig
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # API settings
    PROJECT_NAME: str = "Security Awareness Engagement"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]

    # Users allowed to author quizzes, games and training modules
    ADMIN_USER_IDS: List[str] = []


# Create global settings instance
settings = Settings()

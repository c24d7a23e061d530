from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration for the reconciliation service.

    Reads from environment variables with the IDENTITY_ prefix and an optional .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: str = Field(default="contacts.db", description="SQLite database file")
    host: str = Field(default="0.0.0.0", description="Host to bind")
    port: int = Field(default=8000, description="Port to bind")
    log_level: str = Field(default="INFO", description="Root log level")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")
    transaction_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Deadline in seconds for one /identify transaction",
    )
    busy_timeout: float = Field(
        default=5.0,
        ge=0,
        description="Seconds SQLite waits for a lock held by another process",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

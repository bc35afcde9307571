from functools import lru_cache
from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    PROJECT_NAME: str = "Scheduly API"
    API_V1_STR: str = "/api"
    ENVIRONMENT: str = "local"
    LOG_LEVEL: str = "INFO"

    # Zone applied to candidates and imported events that carry none
    DEFAULT_TZID: str = "Asia/Tokyo"

    SHARE_BASE_URL: str = "https://scheduly.app"
    SHARE_TOKEN_LENGTH: int = 32

    ICS_PRODID: str = "-//Scheduly//Backend//JA"

    CLIENT_TIMEOUT_SECONDS: float = 10.0

    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: List[str] | str) -> List[str]:
        """Allow both comma-separated strings and list inputs."""
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("SHARE_TOKEN_LENGTH")
    @classmethod
    def validate_token_length(cls, value: int) -> int:
        if value < 16:
            raise ValueError("SHARE_TOKEN_LENGTH must be at least 16")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

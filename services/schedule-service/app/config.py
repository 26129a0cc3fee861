"""
Configuration management for the Schedule Service
"""

from typing import Annotated, Any, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Application settings
    APP_NAME: str = "Schedule Service"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = Field(default="INFO")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)
    APP_PATH: str = Field(default="/mjj")
    LOCALE: Literal["zh-Hant", "zh-Hans"] = Field(default="zh-Hant")
    ENABLE_METRICS: bool = Field(default=True)

    # Security settings
    SCHEDULE_PASSWORD: str = Field(default="mjj")
    SECRET_KEY: str = Field(default="a_very_secret_key_that_should_be_in_an_env_var")
    SESSION_COOKIE_NAME: str = Field(default="mjj_session_token")
    SESSION_TTL_DAYS: int = Field(default=7)
    MAX_LOGIN_ATTEMPTS: int = Field(default=3)
    LOCKOUT_SECONDS: int = Field(default=24 * 60 * 60)
    ALLOWED_COUNTRIES: Annotated[List[str], NoDecode] = Field(default=["HK", "TW", "CN"])
    FORCE_HTTPS: bool = Field(default=False)

    # Storage settings
    REDIS_URL: str = Field(default="")
    MAX_BACKUP_COUNT: int = Field(default=100)
    BACKUP_TIMEZONE: str = Field(default="Asia/Hong_Kong")

    @field_validator("ALLOWED_COUNTRIES", mode="before")
    @classmethod
    def split_countries(cls, v: Any) -> list[str]:
        """Split comma-separated country codes into a list."""
        if isinstance(v, str):
            return [code.strip().upper() for code in v.split(",") if code.strip()]
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("APP_PATH")
    @classmethod
    def normalize_app_path(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v

    @field_validator("MAX_BACKUP_COUNT", "MAX_LOGIN_ATTEMPTS", "SESSION_TTL_DAYS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
    }


def get_settings() -> Settings:
    return Settings()

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 800
    openai_api_key: str | None = None
    openai_base_url: str | None = "https://api.openai.com/v1"
    request_timeout_seconds: float = 60.0

    cors_origins: str = "*"
    api_prefix: str = "/ai-assistant"

    redis_url: str | None = None
    session_ttl_seconds: int = 0  # 0 keeps sessions forever

    db_sqlite_path: Path = Path("data/marketplace.db")

    history_window: int = 10
    max_message_length: int = 2000
    default_locale: Literal["en", "ka", "ru"] = "en"
    currency: str = "GEL"

    session_rate_limit: int = 10
    message_rate_limit: int = 20
    api_rate_limit: int = 100
    rate_limit_window_seconds: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="allow",
    )


def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    global _SETTINGS
    try:
        return _SETTINGS
    except NameError:
        _SETTINGS = Settings()
        return _SETTINGS

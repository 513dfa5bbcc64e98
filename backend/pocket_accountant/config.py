from functools import lru_cache
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator, model_validator

_ENV_CANDIDATES = (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path(__file__).resolve().parent.parent / ".env",
    Path.cwd() / ".env",
)

for env_path in _ENV_CANDIDATES:
    if env_path.is_file():
        load_dotenv(env_path, override=False)
        break


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    database_url: str = "postgresql+psycopg://postgres:postgres@db:5432/pocket_accountant"
    bot_token: str | None = Field(default=None, alias="BOT_TOKEN")
    default_currency: str = Field(default="RUB", alias="DEFAULT_CURRENCY")
    limit_warning_threshold: int = Field(default=75, ge=1, le=100)
    webhook_path: str = "/webhook"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=None, populate_by_name=True)

    @field_validator("default_currency", mode="before")
    @classmethod
    def normalise_currency(cls, value: object) -> str:
        code = str(value or "").strip().upper()
        if not 3 <= len(code) <= 5:
            raise ValueError("DEFAULT_CURRENCY must be 3-5 characters long.")
        return code

    @field_validator("webhook_path")
    @classmethod
    def ensure_leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"

    @model_validator(mode="after")
    def populate_from_env(self) -> "Settings":
        if not self.bot_token:
            self.bot_token = os.getenv("BOT_TOKEN") or os.getenv("TELEGRAM_BOT")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""
    return Settings()

"""
Configuration for the workspace sync layer.

Values come from the environment (or a ``.env`` file in the working directory). The two
store settings are required: without them nothing that talks to the hosted backend can
start, so ``get_settings`` raises ``ConfigurationError`` instead of returning a half
configured object. The ``VITE_`` prefixed names used by the web client are accepted as
aliases so one ``.env`` file can serve both.
"""

import logging
from typing import Optional

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    SUPABASE_URL: str = Field(
        default="",
        validation_alias=AliasChoices("SUPABASE_URL", "VITE_SUPABASE_URL"),
    )
    SUPABASE_ANON_KEY: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("SUPABASE_ANON_KEY", "VITE_SUPABASE_ANON_KEY"),
    )
    LOAD_TIMEOUT_SECONDS: float = 8.0
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    LOG_LEVEL: str = "INFO"

    @field_validator("SUPABASE_URL", mode="before")
    @classmethod
    def strip_url(cls, value: Optional[str]) -> str:
        return (value or "").strip().rstrip("/")

    @field_validator("LOAD_TIMEOUT_SECONDS")
    @classmethod
    def check_load_timeout(cls, value: float) -> float:
        if not 1 <= value <= 60:
            raise ValueError("LOAD_TIMEOUT_SECONDS must be between 1 and 60 seconds")
        return value

    @property
    def is_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY.get_secret_value())


def get_settings(**overrides) -> Settings:
    settings = Settings(**overrides)
    if not settings.is_configured:
        raise ConfigurationError(
            "Missing store configuration. Set SUPABASE_URL and SUPABASE_ANON_KEY "
            "(or VITE_SUPABASE_URL and VITE_SUPABASE_ANON_KEY)."
        )
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)

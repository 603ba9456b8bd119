"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the report workflow and
the operator scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.constants import CHARS_PER_TOKEN_ESTIMATE, MAX_TOKEN_LOG_ENTRIES


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class GeminiSettings(BaseSettings):
    """Configuration for Gemini model access."""

    api_key: Optional[str] = Field(None, alias="GEMINI_API_KEY")
    model_name: str = Field("gemini-2.5-flash", alias="GEMINI_MODEL_NAME")

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class GroqSettings(BaseSettings):
    """Configuration for the Groq OpenAI-compatible endpoint."""

    api_key: Optional[str] = Field(None, alias="GROQ_API_KEY")
    model_name: str = Field("llama-3.1-8b-instant", alias="GROQ_MODEL_NAME")
    base_url: str = Field(
        "https://api.groq.com/openai/v1/chat/completions",
        alias="GROQ_API_URL",
    )
    max_tokens: int = Field(2048, alias="GROQ_MAX_TOKENS", gt=0)
    timeout_seconds: float = Field(60.0, alias="GROQ_TIMEOUT_SECONDS", gt=0)

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class UsageSettings(BaseSettings):
    """Defaults for the token usage ledger."""

    tracking_enabled: bool = Field(
        False,
        alias="USAGE_TRACKING_ENABLED",
        description="Initial tracking switch when no stored config exists.",
    )
    max_log_entries: int = Field(
        MAX_TOKEN_LOG_ENTRIES, alias="USAGE_MAX_LOG_ENTRIES", gt=0
    )
    chars_per_token: int = Field(
        CHARS_PER_TOKEN_ESTIMATE, alias="USAGE_CHARS_PER_TOKEN", gt=0
    )

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="APP_LOG_LEVEL")
    llm_provider: Literal["gemini", "groq"] = Field("gemini", alias="LLM_PROVIDER")
    store_db_path: str = Field("./data/greybrainer.db", alias="STORE_DB_PATH")
    gemini: GeminiSettings = Field(default_factory=GeminiSettings)
    groq: GroqSettings = Field(default_factory=GroqSettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("llm_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        """Accept provider names regardless of case or padding."""
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _require_provider_key(self) -> "AppSettings":
        provider_settings = self.gemini if self.llm_provider == "gemini" else self.groq
        if not (provider_settings.api_key or "").strip():
            env_var = "GEMINI_API_KEY" if self.llm_provider == "gemini" else "GROQ_API_KEY"
            raise ValueError(
                f"{env_var} must be set when LLM_PROVIDER is '{self.llm_provider}'."
            )
        return self


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GroqSettings",
    "UsageSettings",
    "get_settings",
]

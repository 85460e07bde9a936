"""
abmeter.tier0_core.config
──────────────────────────
Typed SDK settings with env layering. Reads from .env → environment
variables → explicit keyword overrides. All fields are typed via Pydantic.
Either an API key (remote mode) or a static config document (offline mode)
must be present; anything else fails at construction, not at first use.

Minimal stack: pydantic-settings
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from abmeter.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_FETCH_INTERVAL,
    DEFAULT_FLUSH_INTERVAL,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOG_LEVEL,
)


class AbmeterSettings(BaseSettings):
    """
    Typed SDK configuration. Every env var is prefixed with ABMETER_;
    keyword arguments use the field names.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # ── Remote mode ───────────────────────────────────────────────────────────
    api_key: SecretStr | None = Field(default=None, alias="ABMETER_API_KEY")
    base_url: str = Field(default=DEFAULT_BASE_URL, alias="ABMETER_BASE_URL")
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT, alias="ABMETER_HTTP_TIMEOUT")

    # ── Offline mode ──────────────────────────────────────────────────────────
    static_config: str | None = Field(default=None, alias="ABMETER_STATIC_CONFIG")

    # ── Tuning ────────────────────────────────────────────────────────────────
    flush_interval: float = Field(default=DEFAULT_FLUSH_INTERVAL, alias="ABMETER_FLUSH_INTERVAL")
    fetch_interval: float = Field(default=DEFAULT_FETCH_INTERVAL, alias="ABMETER_FETCH_INTERVAL")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default=DEFAULT_LOG_LEVEL, alias="ABMETER_LOG_LEVEL")
    log_format: str = Field(default="json", alias="ABMETER_LOG_FORMAT")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got {v!r}")
        return v.upper()

    @field_validator("flush_interval", "fetch_interval")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("intervals must be positive")
        return v

    @model_validator(mode="after")
    def require_source(self) -> "AbmeterSettings":
        if self.api_key is None and self.static_config is None:
            raise ValueError("Either api_key or static_config must be provided")
        if self.static_config is None and not self.base_url:
            raise ValueError("No API URL provided")
        return self

    @property
    def is_static(self) -> bool:
        return self.static_config is not None


@lru_cache(maxsize=1)
def get_settings() -> AbmeterSettings:
    """
    Return the singleton settings built from the environment. Cached after
    first call. Call _reset_settings() in tests to pick up new env vars.
    """
    return AbmeterSettings()


def _reset_settings() -> None:
    """For tests: clear the settings cache."""
    get_settings.cache_clear()


__all__ = ["AbmeterSettings", "get_settings"]

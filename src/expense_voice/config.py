"""Typed configuration loader for the voice expense tool."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings using Pydantic's BaseSettings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    expense_db: Path = Field(
        default=Path("var/expenses.sqlite"), alias="EXPENSE_DB"
    )
    store_timeout: float = Field(default=5.0, alias="STORE_TIMEOUT")
    session_timeout: float = Field(default=10.0, alias="SESSION_TIMEOUT")

    export_encoding: str = Field(default="utf-8-sig", alias="EXPORT_ENCODING")
    export_delimiter: str = Field(default=",", alias="EXPORT_DELIMITER")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str | None) -> str:
        return (value or "INFO").upper()

    @field_validator("store_timeout", "session_timeout", mode="after")
    @classmethod
    def _require_positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Timeouts must be greater than zero seconds.")
        return value

    @field_validator("export_delimiter", mode="after")
    @classmethod
    def _require_single_character(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("EXPORT_DELIMITER must be a single character.")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]

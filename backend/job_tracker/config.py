"""Application configuration with Pydantic Settings validation."""

from __future__ import annotations

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """All application settings, loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_file=("../.env", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────
    database_url: str = "sqlite:///job_tracker.db"

    # ── Linking ───────────────────────────────────────────
    company_match_window_days: int = 60

    # ── Identity ──────────────────────────────────────────
    identity_header: str = "x-user-email"

    # ── Server ────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    # ── Logging ───────────────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # ── Validators ────────────────────────────────────────
    @field_validator("cors_origins", mode="before")
    @classmethod
    def ensure_string(cls, v: object) -> str:
        return str(v).strip()

    @field_validator("identity_header", mode="before")
    @classmethod
    def lower_header(cls, v: object) -> str:
        return str(v).strip().lower()

    @field_validator("company_match_window_days")
    @classmethod
    def positive_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError("company_match_window_days must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def get_config() -> AppConfig:
    """Load and return validated application config."""
    return AppConfig()

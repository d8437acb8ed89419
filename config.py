"""
Configuration settings for the NeuroPlay session engine.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Record Store
    # ========================================
    store_backend: Literal["sql", "rest", "memory"] = Field(
        default="sql",
        description="Which record store backs session and metric rows",
    )
    database_url: str = Field(
        default="sqlite:///neuroplay.db",
        description="SQLAlchemy connection string (sqlite or PostgreSQL)",
    )

    # ─── Hosted REST store (PostgREST-style) ────────────────────────────────────
    rest_url: str | None = Field(
        default=None,
        description="Base URL of the hosted data store, e.g. https://xyz.example.co/rest/v1",
    )
    rest_api_key: str | None = Field(
        default=None,
        description="API key sent as 'apikey' and bearer token",
    )
    rest_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for store calls",
    )
    rest_sessions_table: str = Field(
        default="game_sessions",
        description="Table holding session rows",
    )
    rest_metrics_table: str = Field(
        default="behavioral_metrics",
        description="Table holding behavioral metric rows",
    )

    # ========================================
    # Session Lifecycle
    # ========================================
    checkpoint_interval_seconds: float = Field(
        default=10.0,
        description="Minimum interval between routine checkpoints",
    )
    recovery_grace_seconds: float = Field(
        default=5.0,
        description="Sessions written more recently than this are assumed live in another tab",
    )
    session_expiry_hours: int = Field(
        default=24,
        description="Active sessions older than this are no longer offered for resume",
    )
    adaptive_mode_default: bool = Field(
        default=True,
        description="Adaptive difficulty when a game profile does not say otherwise",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/neuroplay.log",
        description="Log file path (None for stderr only)",
    )

    def has_rest_configured(self) -> bool:
        """Check if the hosted REST store is configured."""
        return bool(self.rest_url)

    def get_engine_config(self) -> dict[str, Any]:
        """Get session engine configuration as a dictionary."""
        return {
            "checkpoint_interval_seconds": self.checkpoint_interval_seconds,
            "recovery_grace_seconds": self.recovery_grace_seconds,
            "session_expiry_hours": self.session_expiry_hours,
            "adaptive_mode_default": self.adaptive_mode_default,
        }

    def get_rest_config(self) -> dict[str, Any]:
        """Get hosted store configuration as a dictionary."""
        return {
            "base_url": self.rest_url,
            "api_key": self.rest_api_key,
            "timeout": self.rest_timeout_seconds,
            "sessions_table": self.rest_sessions_table,
            "metrics_table": self.rest_metrics_table,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

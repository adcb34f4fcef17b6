"""Centralized configuration management using Pydantic Settings.

This module provides a single source of truth for all configuration values.
All settings can be overridden via environment variables.
"""

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables.
    For example, SNAPSHOT_CACHE_TTL_SECONDS=60 will override the default.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ========== Rule Repository Configuration ==========
    rules_dir: Path = Field(
        default=Path("carrier_rules_data"),
        description="Directory holding one JSON rule document per carrier"
    )
    snapshot_cache_ttl_seconds: float = Field(
        default=300.0,
        ge=0,
        description="How long a loaded rule snapshot is reused before reloading"
    )

    # ========== Loading Meter Configuration ==========
    iso_lm_width_cm: float = Field(
        default=250.0,
        gt=0,
        description="Reference deck lane width used by the base LM formula"
    )

    # ========== Request Defaults ==========
    default_unit_count: int = Field(
        default=1,
        ge=1,
        description="Unit count assumed when a request does not declare one"
    )
    currency: str = Field(
        default="EUR",
        description="Currency code reported alongside surcharge amounts"
    )

    # ========== Logging ==========
    log_level: str = Field(
        default="INFO",
        description="Root logging level"
    )

    def get_rules_dir(self, project_dir: Path) -> Path:
        """Get absolute path to the rules directory.

        Args:
            project_dir: Project root directory

        Returns:
            Absolute path to the rules directory
        """
        if self.rules_dir.is_absolute():
            return self.rules_dir
        return project_dir / self.rules_dir


# Global settings instance
# Environment variables will be loaded automatically on first access
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance.

    Creates and caches a Settings instance on first call.
    Subsequent calls return the cached instance.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None

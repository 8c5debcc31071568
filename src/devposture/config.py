"""Configuration management for devposture using Pydantic Settings.

Configuration is loaded from environment variables and/or .env files.
Environment variables take precedence over .env file values.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ThreatIntelSettings(BaseSettings):
    """Public threat-intel source settings."""

    model_config = SettingsConfigDict(env_prefix="INTEL_")

    circl_url: str = Field(
        default="https://cve.circl.lu/api/cve",
        description="CIRCL CVE search API base URL",
    )
    kev_url: str = Field(
        default="https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json",
        description="URL for CISA KEV catalog JSON",
    )
    timeout: float = Field(
        default=8,
        gt=0,
        le=60,
        description="Per-request timeout in seconds",
    )


class Settings(BaseSettings):
    """Main application settings.

    All settings can be configured via environment variables.
    Nested settings use double underscores, e.g., INTEL__TIMEOUT.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    trend_days: int = Field(
        default=30,
        ge=1,
        le=30,
        description="Default detection trend window in days",
    )

    intel: ThreatIntelSettings = Field(default_factory=ThreatIntelSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Application settings instance, cached for reuse.
    """
    return Settings()

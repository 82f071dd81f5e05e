"""Configuration management for HoodPulse.

Settings are read from environment variables prefixed with ``HOODPULSE_``
(or a local ``.env`` file). Services never read settings themselves; the
wiring layer passes the values into constructors.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_EVERGREEN_PATH = Path(__file__).parent / "data" / "evergreen.json"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="HOODPULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    timezone: str = Field(
        default="America/New_York",
        description="Civil time zone of the city; naive timestamps are read in it",
    )

    # Event cache
    cache_ttl_minutes: int = Field(default=120, description="Cache freshness window")
    source_timeout: float = Field(default=10.0, description="Per-source fetch timeout in seconds")
    min_upcoming: int = Field(
        default=5,
        description="Below this many upcoming events for an area, supplement with search",
    )
    max_results: int = Field(default=20, description="Cap on events returned per area")

    # Sessions
    session_ttl_minutes: int = Field(default=120, description="Session lifetime since last turn")
    history_length: int = Field(default=6, description="Turns of history kept per session")
    rate_limit_enabled: bool = Field(default=False, description="Throttle turns per user")
    rate_limit_max: int = Field(default=15, description="Turns allowed per user per window")
    rate_limit_window_minutes: int = Field(default=60, description="Rate-limit window")
    sweep_interval_seconds: float = Field(
        default=600.0,
        description="How often expired sessions and rate-limit windows are swept",
    )

    # External collaborators
    classifier_timeout: float = Field(default=12.0, description="Classifier call timeout in seconds")
    renderer_timeout: float = Field(default=15.0, description="Renderer call timeout in seconds")
    search_api_key: Optional[str] = Field(
        default=None,
        description="API key for the on-demand web search source (disabled when unset)",
    )
    search_api_url: str = Field(default="https://api.tavily.com/search")

    evergreen_path: Path = Field(
        default=DEFAULT_EVERGREEN_PATH,
        description="JSON file of evergreen venue picks per area",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()

"""Engine configuration.

Resolution order: programmatic, environment variables (``SUPERTX_`` prefix),
``.env`` file, defaults.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Configuration for planning and execution."""

    # Execution deadlines
    finality_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Max time a node may wait for chain finality",
    )
    bridge_timeout_seconds: float = Field(
        default=1800.0,
        gt=0,
        description="Max time a bridge step may wait for settlement",
    )
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Delay between finality/settlement polls",
    )
    halt_on_failure: bool = Field(
        default=False,
        description="Stop submitting independent branches after the first "
        "node failure. Nodes already in flight still settle.",
    )

    # Quotes
    quote_ttl_seconds: int = Field(default=120, ge=1)
    quote_cache_size: int = Field(default=1000, ge=1)

    # Chain registry
    chains_file: Optional[str] = Field(
        default=None, description="Path to the JSON chain/route document"
    )

    # Run storage
    mongo_uri: Optional[str] = Field(
        default=None, description="MongoDB URI. In-memory storage when unset."
    )
    mongo_db: str = Field(default="supertx")
    runs_collection: str = Field(default="runs")

    model_config = SettingsConfigDict(
        env_prefix="SUPERTX_",
        env_file=".env",
        extra="ignore",
    )


# Global settings instance
_settings: Optional[EngineSettings] = None


def get_settings() -> EngineSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = EngineSettings()
    return _settings


def set_settings(settings: Optional[EngineSettings]) -> None:
    """Replace the global settings instance (None resets to environment)."""
    global _settings
    _settings = settings

"""Configuration management with pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarflowSettings(BaseSettings):
    """harflow settings loaded from environment variables.

    All settings use the HARFLOW_ prefix for environment variables.
    """

    # Logging configuration
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: str = Field(default="console", description="Log output format: console or json")

    # Translation tunables
    timestamp_sequencing_threshold_ms: int = Field(
        default=50,
        ge=0,
        description="Consecutive requests started within this many ms are chained",
    )
    min_token_length: int = Field(
        default=8,
        ge=1,
        description="Shortest string value eligible for dependency templating",
    )
    reduction_edge_limit: int | None = Field(
        default=None,
        ge=1,
        description="Skip transitive reduction above this many candidate edges (unset: always reduce)",
    )
    flow_name: str = Field(default="Imported HAR Flow", description="Name of the generated flow")

    # Layout configuration
    layout_spacing_x: float = Field(default=300, description="Horizontal distance between levels")
    layout_spacing_y: float = Field(
        default=150, description="Vertical distance between nodes sharing a level"
    )

    model_config = SettingsConfigDict(
        env_prefix="HARFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global settings instance
_settings: HarflowSettings | None = None


def get_settings() -> HarflowSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = HarflowSettings()
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None

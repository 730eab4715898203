"""Configuration and settings management using pydantic-settings."""
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # Scheduler settings
    max_parallel_nodes: int = Field(
        default=8,
        description="Worker threads used to run one fanned-out frontier",
    )
    warn_on_revisit: bool = Field(
        default=True,
        description="Log a warning when an already-executed node is reached again",
    )

    @field_validator("max_parallel_nodes")
    @classmethod
    def validate_max_parallel_nodes(cls, v: int) -> int:
        """Validate that the worker count is positive."""
        if v <= 0:
            raise ValueError("max_parallel_nodes must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case level names."""
        return v.upper()


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None

"""Configuration management for Serverwarden."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from serverwarden.constants import (
    DEFAULT_ARTIFACT_FILENAME,
    DEFAULT_MANIFEST_URL,
    DEFAULT_MEMORY_ALLOCATION_GB,
    DEFAULT_STATE_FILE,
    PROGRESS_INTERVAL_SECONDS,
    UPDATE_INTERVAL_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Release metadata
    manifest_url: str = Field(
        default=DEFAULT_MANIFEST_URL, description="URL of the release manifest"
    )
    update_interval_seconds: float = Field(
        default=UPDATE_INTERVAL_SECONDS, gt=0, description="Seconds between update checks"
    )

    # Installation
    artifact_filename: str = Field(
        default=DEFAULT_ARTIFACT_FILENAME, description="File name of the server artifact"
    )
    java_executable: str = Field(default="java", description="Executable used to run the server")
    state_file: str = Field(
        default=DEFAULT_STATE_FILE, description="Path of the persisted installation state"
    )
    default_install_path: str = Field(
        default_factory=lambda: str(Path.home() / "minecraft"),
        description="Install path offered during first-run setup",
    )
    default_memory_allocation: int = Field(
        default=DEFAULT_MEMORY_ALLOCATION_GB,
        ge=1,
        description="Memory allocation (GB) offered during first-run setup",
    )

    # HTTP
    progress_interval_seconds: float = Field(
        default=PROGRESS_INTERVAL_SECONDS, gt=0, description="Download progress cadence"
    )
    http_timeout_seconds: float | None = Field(
        default=None, description="Deadline for one HTTP exchange; unset means no deadline"
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")
    log_to_file: bool = Field(default=False, description="Also write logs to a rotating file")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate after bytes")
    log_file_backup_count: int = Field(default=5, description="Rotated files to keep")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def log_file_path(self) -> str:
        """Get the full path of the main log file."""
        return str(Path(self.log_directory) / "serverwarden.log")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

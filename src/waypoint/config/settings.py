"""Waypoint configuration settings using pydantic-settings."""

import os
from functools import cached_property
from pathlib import Path

from pydantic import SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_CONFIG_FILE = Path("~/.config/waypoint/config.yaml")


def config_file_path() -> Path:
    """Return the YAML config file location (WAYPOINT_CONFIG_FILE overrides)."""
    override = os.environ.get("WAYPOINT_CONFIG_FILE")
    return Path(override).expanduser() if override else DEFAULT_CONFIG_FILE.expanduser()


class Settings(BaseSettings):
    """Configuration settings for the Waypoint tracking agent.

    Settings are loaded from environment variables with the WAYPOINT_ prefix,
    then from an optional YAML file. For example, WAYPOINT_SYNC_INTERVAL=120
    sets sync_interval to 120.
    """

    model_config = SettingsConfigDict(
        env_prefix="WAYPOINT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    server_url: str = "http://localhost:8000"
    track_path: str = "/track"
    summary_path: str = "/locations/{date}"

    # Credentials
    token: SecretStr | None = None
    token_file: Path | None = None

    # Timing
    upload_timeout: float = 10.0  # seconds per upload attempt
    sync_interval: float = 60.0  # seconds between periodic drains
    connectivity_poll_interval: float = 5.0
    capture_poll_interval: float = 60.0  # 0 disables the periodic position fetch

    # Reachability probes
    probe_host: str | None = None
    probe_port: int = 443
    probe_url: str | None = None

    # Queue policy
    max_rejections: int = 0  # 0 retries rejected samples forever
    max_pending: int | None = None

    # File paths
    data_dir: Path = Path("~/.local/share/waypoint")

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Environment wins over the YAML file."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=config_file_path()),
            file_secret_settings,
        )

    @field_validator(
        "upload_timeout", "sync_interval", "connectivity_poll_interval"
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Ensure intervals and timeouts are positive."""
        if v <= 0:
            raise ValueError("must be greater than 0 seconds")
        return v

    @field_validator("capture_poll_interval")
    @classmethod
    def validate_capture_poll_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("capture_poll_interval cannot be negative")
        return v

    @field_validator("max_rejections")
    @classmethod
    def validate_max_rejections(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_rejections cannot be negative")
        return v

    @field_validator("max_pending")
    @classmethod
    def validate_max_pending(cls, v: int | None) -> int | None:
        if v is not None and v < 1:
            raise ValueError("max_pending must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @property
    def queue_path(self) -> Path:
        """SQLite file holding pending samples."""
        return self.data_path / "queue.db"

    @property
    def pid_path(self) -> Path:
        return self.data_path / "agent.pid"

    @property
    def track_url(self) -> str:
        return self.server_url.rstrip("/") + self.track_path

    def summary_url(self, day: str) -> str:
        """Build the date-scoped summary URL."""
        return self.server_url.rstrip("/") + self.summary_path.format(date=day)

"""Waypoint configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from waypoint.config import get_settings

    settings = get_settings()
    print(settings.sync_interval)
    print(settings.track_url)
"""

from functools import lru_cache

from waypoint.config.settings import Settings, config_file_path

__all__ = ["Settings", "config_file_path", "get_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns a Settings instance that is cached for the lifetime of the
    process. Only entry points (CLI commands) call this; library code takes
    its Settings as a constructor argument.

    To reload settings, call get_settings.cache_clear() first.

    Returns:
        Settings instance loaded from environment variables and config file.
    """
    return Settings()

"""Configuration module."""

from config.settings import settings, Settings, ConfigurationError

__all__ = [
    "settings",
    "Settings",
    "ConfigurationError",
]

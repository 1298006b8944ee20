"""Configuration management module."""

from .settings import (
    Settings,
    get_settings,
    load_settings,
    parse_database_url,
    parse_duration,
    reset_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "load_settings",
    "parse_database_url",
    "parse_duration",
    "reset_settings",
]

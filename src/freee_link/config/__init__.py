"""Configuration module for freee-link."""

from freee_link.config.logging import configure_logging, get_logger
from freee_link.config.mappings import Mappings, load_mappings
from freee_link.config.settings import (
    ConfigurationError,
    Settings,
    get_settings,
    load_settings,
)

__all__ = [
    "ConfigurationError",
    "Mappings",
    "Settings",
    "configure_logging",
    "get_logger",
    "get_settings",
    "load_mappings",
    "load_settings",
]

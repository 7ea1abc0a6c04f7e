"""Configuration module for the shift-closing workflow."""

from shift_closing.config.logging import (
    bind_closing_context,
    clear_closing_context,
    configure_logging,
)
from shift_closing.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "get_settings",
    "configure_logging",
    "bind_closing_context",
    "clear_closing_context",
]

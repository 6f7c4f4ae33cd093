"""Configuration module for recurring auto-apply."""

from recurring_autoapply.config.logging import (
    configure_logging,
    drop_muted_components,
    get_logger,
    is_component_muted,
    set_component_logging,
)
from recurring_autoapply.config.settings import FlatSettings, get_settings

__all__ = [
    "FlatSettings",
    "get_settings",
    "configure_logging",
    "drop_muted_components",
    "get_logger",
    "is_component_muted",
    "set_component_logging",
]

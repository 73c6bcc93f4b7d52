"""Configuration module for erdeploy."""

from .settings import Settings, TargetConfig, get_settings, resolve_target
from .logging import setup_logging, get_logger

__all__ = [
    "Settings",
    "TargetConfig",
    "get_settings",
    "resolve_target",
    "setup_logging",
    "get_logger",
]

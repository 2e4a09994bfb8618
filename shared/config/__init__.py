"""Configuration management for ddml."""

from .base import BaseConfiguration, Environment
from .ddml_config import DDMLConfig, get_config, reset_config

__all__ = [
    "BaseConfiguration",
    "Environment",
    "DDMLConfig",
    "get_config",
    "reset_config",
]

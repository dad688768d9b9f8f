"""Configuration management."""

from .manager import Config, ConfigManager
from ..models.config import OutputConfig, ProfileConfig

__all__ = ["Config", "ConfigManager", "OutputConfig", "ProfileConfig"]

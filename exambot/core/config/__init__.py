"""Configuration management."""

from .config_models import AppConfig
from .settings import BotSettings, get_settings, reset_settings

__all__ = ["AppConfig", "BotSettings", "get_settings", "reset_settings"]

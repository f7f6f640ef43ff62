"""
config/ — Settings loaded from config.yaml + environment.
"""

from alertsleuth.config.settings import ConfigError, Settings, get_settings, load_settings

__all__ = ["Settings", "ConfigError", "load_settings", "get_settings"]

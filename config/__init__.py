"""Configuration package."""

from .settings import Settings, load_config, settings_from_dict

__all__ = ["Settings", "load_config", "settings_from_dict"]

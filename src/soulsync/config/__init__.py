"""Configuration for SoulSync."""

from soulsync.config.settings import Settings, settings

__all__ = ["Settings", "settings"]

"""Core module for configuration and cross-cutting utilities."""

from pinworker.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]

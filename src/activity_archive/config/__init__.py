"""
Configuration loading for the activity archive.
"""

from .config_loader import ArchiveConfig, DEFAULT_CONFIG

__all__ = ["ArchiveConfig", "DEFAULT_CONFIG"]

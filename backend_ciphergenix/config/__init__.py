"""
Configuration management for the CipherGenix detection engine.

Loads and validates settings from environment variables and an optional .env
file. Exposes a single source of truth for thresholds, weights and intervals.
"""

from backend_ciphergenix.config.settings import (  # noqa: F401
    Settings,
    get_settings,
    reset_settings_cache,
)

__all__ = ["Settings", "get_settings", "reset_settings_cache"]

# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# STATUS: Core - Configuration
# PURPOSE: Centralized configuration management
# CREATED: 14 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized, environment-driven configuration for the managed
database credential service.
"""

from core.config.settings import (
    DEFAULT_IDENTITY_SCOPE,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    ManagedDatabaseConfig,
    PoolSettings,
    Settings,
    get_settings,
    is_local_dev,
    reset_settings,
)

__all__ = [
    "DEFAULT_IDENTITY_SCOPE",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "ManagedDatabaseConfig",
    "PoolSettings",
    "Settings",
    "get_settings",
    "is_local_dev",
    "reset_settings",
]

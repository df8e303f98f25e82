# ============================================================================
# CONFIGURATION SETTINGS
# ============================================================================
# STATUS: Core - Environment-driven configuration
# PURPOSE: Managed database coordinates, identity settings, pool limits
# CREATED: 14 OCT 2026
# ============================================================================
"""
Configuration Settings

Loads configuration from environment variables with sensible defaults.

Design:
- Immutable dataclasses
- from_env() classmethods, optionally fed an explicit mapping (tests)
- Secrets excluded from repr()

Local development is APP_ENV=development without SECRET_STORE_NAME. The
static-token path additionally needs DB_STATIC_TOKEN and DB_WORKSPACE_URL.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

# Azure Databricks first-party application (resource) id
DEFAULT_IDENTITY_SCOPE = "2ff814a6-3304-4ab8-85cb-cd0e6f879c1d/.default"
DEFAULT_CLIENT_SECRET_NAME = "db-client-secret"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0


def resolve_env(env: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    return os.environ if env is None else env


def env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def is_local_dev(env: Optional[Mapping[str, str]] = None) -> bool:
    """True when APP_ENV is development and no secret store is configured."""
    env = resolve_env(env)
    return env.get("APP_ENV") == "development" and not env.get("SECRET_STORE_NAME")


@dataclass(frozen=True)
class ManagedDatabaseConfig:
    """
    Configuration for the managed-database credential subsystem.

    All values come from the environment; see from_env() for the keys.
    """
    enabled: bool = False

    # Credential-issuing workspace
    workspace_url: str = ""
    instance_name: str = ""
    identity_scope: str = DEFAULT_IDENTITY_SCOPE
    http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS

    # Connection coordinates
    hostname: str = ""
    port: int = 5432
    database: str = ""

    # Identity
    tenant_id: str = ""
    client_id: str = ""
    dev_identity: str = ""
    secret_store_name: str = ""
    client_secret_name: str = DEFAULT_CLIENT_SECRET_NAME
    static_token: str = field(default="", repr=False)
    client_secret_fallback: str = field(default="", repr=False)

    # Environment
    app_env: str = ""

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ManagedDatabaseConfig":
        """Load configuration from environment variables."""
        env = resolve_env(env)
        return cls(
            enabled=env_flag(env.get("USE_MANAGED_DB")),
            workspace_url=env.get("DB_WORKSPACE_URL", "").rstrip("/"),
            instance_name=env.get("DB_INSTANCE_NAME", ""),
            identity_scope=env.get("DB_IDENTITY_SCOPE", DEFAULT_IDENTITY_SCOPE),
            http_timeout_seconds=float(
                env.get("DB_HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT_SECONDS)
            ),
            hostname=env.get("DB_HOSTNAME", ""),
            port=int(env.get("DB_PORT", 5432)),
            database=env.get("DB_DATABASE_NAME", ""),
            tenant_id=env.get("DB_TENANT_ID", ""),
            client_id=env.get("DB_CLIENT_ID", ""),
            dev_identity=env.get("PGUSER", ""),
            secret_store_name=env.get("SECRET_STORE_NAME", ""),
            client_secret_name=env.get("DB_CLIENT_SECRET_NAME", DEFAULT_CLIENT_SECRET_NAME),
            static_token=env.get("DB_STATIC_TOKEN", ""),
            client_secret_fallback=env.get("DB_CLIENT_SECRET", ""),
            app_env=env.get("APP_ENV", ""),
        )

    @property
    def is_local_dev(self) -> bool:
        """Local development without a secret store."""
        return self.app_env == "development" and not self.secret_store_name

    @property
    def has_static_token(self) -> bool:
        """Local development with a static token and a workspace to exchange it at."""
        return self.is_local_dev and bool(self.static_token) and bool(self.workspace_url)

    @property
    def secret_store_url(self) -> str:
        """Key Vault URL derived from SECRET_STORE_NAME."""
        return f"https://{self.secret_store_name}.vault.azure.net"

    def missing_required(self) -> List[str]:
        """
        Names of required environment variables that are not set.

        The required set depends on the auth path:
        - static token: workspace, host, database, instance
        - federated identity: + DB_TENANT_ID
        - production (not local dev): + DB_CLIENT_ID, SECRET_STORE_NAME
        """
        required = {
            "DB_WORKSPACE_URL": self.workspace_url,
            "DB_HOSTNAME": self.hostname,
            "DB_DATABASE_NAME": self.database,
            "DB_INSTANCE_NAME": self.instance_name,
        }
        if not self.has_static_token:
            required["DB_TENANT_ID"] = self.tenant_id
        if not self.is_local_dev:
            required["DB_CLIENT_ID"] = self.client_id
            required["SECRET_STORE_NAME"] = self.secret_store_name

        return [name for name, value in required.items() if not value]


@dataclass(frozen=True)
class PoolSettings:
    """
    Connection pool limits and timeouts.

    refresh_interval_seconds: managed mode replaces the pool on this
    schedule, ahead of the ~1 hour token lifetime. 0 disables it.
    """
    min_size: int = 5
    max_size: int = 20
    timeout_seconds: float = 10.0
    max_idle_seconds: float = 60.0
    max_lifetime_seconds: float = 3600.0
    refresh_interval_seconds: float = 50 * 60.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "PoolSettings":
        """Create from environment variables."""
        env = resolve_env(env)
        return cls(
            min_size=int(env.get("DB_POOL_MIN_SIZE", 5)),
            max_size=int(env.get("DB_POOL_MAX_SIZE", 20)),
            timeout_seconds=float(env.get("DB_POOL_TIMEOUT_SECONDS", 10.0)),
            max_idle_seconds=float(env.get("DB_POOL_MAX_IDLE_SECONDS", 60.0)),
            max_lifetime_seconds=float(env.get("DB_POOL_MAX_LIFETIME_SECONDS", 3600.0)),
            refresh_interval_seconds=float(env.get("DB_POOL_REFRESH_SECONDS", 50 * 60.0)),
        )


# ============================================================================
# GLOBAL SETTINGS INSTANCE
# ============================================================================

@dataclass(frozen=True)
class Settings:
    """Container for all configuration."""
    database: ManagedDatabaseConfig = field(default_factory=ManagedDatabaseConfig)
    pool: PoolSettings = field(default_factory=PoolSettings)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Create all settings from environment variables."""
        return cls(
            database=ManagedDatabaseConfig.from_env(env),
            pool=PoolSettings.from_env(env),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "DEFAULT_IDENTITY_SCOPE",
    "DEFAULT_CLIENT_SECRET_NAME",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "resolve_env",
    "env_flag",
    "is_local_dev",
    "ManagedDatabaseConfig",
    "PoolSettings",
    "Settings",
    "get_settings",
    "reset_settings",
]

# ============================================================================
# HEALTH CHECK PLUGINS
# ============================================================================
# STATUS: Infrastructure - Health check implementations
# PURPOSE: Checks for configuration, credentials and the connection pool
# CREATED: 17 OCT 2026
# ============================================================================
"""
Health Check Plugins

Startup Checks (priority 10):
- config: Required managed database variables present

Credential Checks (priority 20):
- managed_credential: Cached token and TTL (managed mode only)

Database Checks (priority 30):
- connection_pool: Supervisor state and pool stats
- postgres: SELECT 1 through the supervisor

Register everything for one supervisor:
    register_database_checks(registry, supervisor, settings.database)
"""

from typing import Optional

from core.config import ManagedDatabaseConfig
from health.checks.credentials import ManagedConfigCheck, ManagedCredentialCheck
from health.checks.database import ConnectionPoolCheck, PostgresCheck
from health.registry import HealthCheckRegistry
from repositories.database import ConnectionPoolSupervisor


def register_database_checks(
    registry: HealthCheckRegistry,
    supervisor: ConnectionPoolSupervisor,
    config: Optional[ManagedDatabaseConfig] = None,
) -> HealthCheckRegistry:
    """Register the checks bound to supervisor (and its token manager)."""
    if config is not None:
        registry.register(ManagedConfigCheck(config))
    if supervisor.token_manager is not None:
        registry.register(ManagedCredentialCheck(supervisor.token_manager))
    registry.register(ConnectionPoolCheck(supervisor))
    registry.register(PostgresCheck(supervisor))
    return registry


__all__ = [
    "ManagedConfigCheck",
    "ManagedCredentialCheck",
    "ConnectionPoolCheck",
    "PostgresCheck",
    "register_database_checks",
]

# ============================================================================
# DATABASE HEALTH CHECKS
# ============================================================================
# STATUS: Infrastructure - Pool state and connectivity checks
# PURPOSE: Report supervisor state, pool saturation and query round trip
# CREATED: 17 OCT 2026
# ============================================================================
"""
Database Health Checks (priority 30)

- ConnectionPoolCheck: supervisor state + psycopg_pool stats
- PostgresCheck: SELECT 1 through the supervisor (auth recovery applies)
"""

import logging

from core.contracts import PoolState
from health.core import HealthCheckCategory, HealthCheckPlugin, HealthCheckResult
from repositories.database import ConnectionPoolSupervisor

logger = logging.getLogger(__name__)

# psycopg_pool stats surfaced in the check details
POOL_STAT_KEYS = (
    "pool_size",
    "pool_available",
    "pool_min",
    "pool_max",
    "requests_waiting",
    "requests_num",
    "requests_queued",
    "requests_errors",
    "connections_num",
    "connections_lost",
    "connections_errors",
)


class ConnectionPoolCheck(HealthCheckPlugin):
    """
    Connection pool health check.

    Status logic:
    - UNHEALTHY: no pool yet, supervisor closed, or last rebuild failed
    - DEGRADED: recovery in progress, requests waiting, or pool exhausted
    - HEALTHY: active pool with capacity
    """

    name = "connection_pool"
    category = HealthCheckCategory.DATABASE
    timeout_seconds = 2.0

    def __init__(self, supervisor: ConnectionPoolSupervisor):
        self.supervisor = supervisor

    async def check(self) -> HealthCheckResult:
        stats = self.supervisor.get_stats()
        state = self.supervisor.state
        details = {
            "state": stats["state"],
            "generation": stats["generation"],
            "managed": stats["managed"],
            "schema": stats["schema"],
            "retiring_pools": stats["retiring_pools"],
        }
        details.update({key: stats[key] for key in POOL_STAT_KEYS if key in stats})

        if state == PoolState.FAILED:
            return HealthCheckResult.unhealthy(
                message="Pool rebuild failed after authentication error", **details
            )
        if state in (PoolState.UNINITIALIZED, PoolState.CLOSED):
            return HealthCheckResult.unhealthy(
                message=f"Connection pool not available ({state.value})", **details
            )
        if state == PoolState.RECOVERING:
            return HealthCheckResult.degraded(
                message="Connection pool is being rebuilt", **details
            )

        waiting = stats.get("requests_waiting", 0)
        available = stats.get("pool_available", 0)
        size = stats.get("pool_size", 0)
        maximum = stats.get("pool_max", 0)

        if waiting > 0:
            return HealthCheckResult.degraded(
                message=f"Pool saturated: {waiting} requests waiting ({available}/{size} available)",
                **details,
            )
        if available == 0 and size >= maximum:
            return HealthCheckResult.degraded(
                message=f"Pool fully utilized: 0/{size} available (max {maximum})",
                **details,
            )

        return HealthCheckResult.healthy(
            message=f"Pool OK: {available}/{size} available (max {maximum})",
            **details,
        )


class PostgresCheck(HealthCheckPlugin):
    """Round trip to PostgreSQL through the supervisor."""

    name = "postgres"
    category = HealthCheckCategory.DATABASE
    timeout_seconds = 5.0

    def __init__(self, supervisor: ConnectionPoolSupervisor):
        self.supervisor = supervisor

    async def check(self) -> HealthCheckResult:
        try:
            row = await self.supervisor.fetch_one("SELECT 1 AS health_check")
        except Exception as e:
            return HealthCheckResult.unhealthy(
                message=f"PostgreSQL query failed: {type(e).__name__}: {e}",
                generation=self.supervisor.generation,
            )

        if not row or row.get("health_check") != 1:
            return HealthCheckResult.unhealthy(
                message="PostgreSQL query returned unexpected result",
            )

        return HealthCheckResult.healthy(
            message="PostgreSQL connected",
            schema=self.supervisor.schema_name,
            generation=self.supervisor.generation,
        )


__all__ = ["ConnectionPoolCheck", "PostgresCheck"]

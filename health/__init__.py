# ============================================================================
# HEALTH CHECK MODULE
# ============================================================================
# STATUS: Infrastructure - Health check plugin system
# PURPOSE: Kubernetes probes and credential/pool health monitoring
# CREATED: 17 OCT 2026
# ============================================================================
"""
Health Check Module

- /livez: Process alive (instant)
- /readyz: Required checks pass
- /health: All checks with details

Usage:
    from health import HealthCheckRegistry, health_router
    from health.checks import register_database_checks

    registry = register_database_checks(HealthCheckRegistry(), supervisor)
    app.state.health_registry = registry
    app.include_router(health_router)
"""

from health.core import (
    AggregatedHealthResult,
    HealthCheckCategory,
    HealthCheckPlugin,
    HealthCheckResult,
    HealthStatus,
)
from health.executor import HealthCheckExecutor
from health.registry import HealthCheckRegistry
from health.router import health_router

__all__ = [
    "AggregatedHealthResult",
    "HealthCheckCategory",
    "HealthCheckPlugin",
    "HealthCheckResult",
    "HealthStatus",
    "HealthCheckExecutor",
    "HealthCheckRegistry",
    "health_router",
]

# ============================================================================
# HEALTH CHECK ROUTER
# ============================================================================
# STATUS: Infrastructure - FastAPI health check endpoints
# PURPOSE: Kubernetes probes and credential/pool status endpoints
# CREATED: 17 OCT 2026
# ============================================================================
"""
Health Check Router

Endpoints:
    GET /livez   - Process alive, no external calls
    GET /readyz  - Required checks pass (pool usable)
    GET /health  - All checks with details
    GET /health/{check_name} - Single check

Response Codes:
    200 - Healthy
    206 - Degraded
    503 - Unhealthy
    404 - Unknown check name

The registry is read from request.app.state.health_registry.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from __version__ import BUILD_DATE, __version__
from health.core import HealthStatus
from health.executor import HealthCheckExecutor
from health.registry import HealthCheckRegistry

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])

READY_TIMEOUT_SECONDS = 10.0
HEALTH_TIMEOUT_SECONDS = 30.0


def _status_to_http_code(status: HealthStatus) -> int:
    return {
        HealthStatus.HEALTHY: 200,
        HealthStatus.DEGRADED: 206,
        HealthStatus.UNHEALTHY: 503,
    }[status]


def _get_registry(request: Request) -> HealthCheckRegistry:
    registry = getattr(request.app.state, "health_registry", None)
    if registry is None:
        registry = HealthCheckRegistry()
        request.app.state.health_registry = registry
    return registry


@health_router.get("/livez")
async def liveness_probe():
    """Liveness probe. No external checks."""
    return {"status": "alive", "version": __version__, "build_date": BUILD_DATE}


@health_router.get("/readyz")
async def readiness_probe(request: Request):
    """
    Readiness probe.

    503 with the failing checks if any required check is unhealthy.
    Degraded checks (e.g. recovery in progress) still count as ready.
    """
    registry = _get_registry(request)
    if len(registry) == 0:
        return {"status": "ready", "message": "No checks registered"}

    executor = HealthCheckExecutor(registry, overall_timeout=READY_TIMEOUT_SECONDS)
    result = await executor.execute_required()

    if result.status == HealthStatus.UNHEALTHY:
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "checks": {
                    name: check.to_dict()
                    for name, check in result.checks.items()
                    if check.status == HealthStatus.UNHEALTHY
                },
                "total_duration_ms": round(result.total_duration_ms, 2),
            },
        )

    return {
        "status": "ready",
        "checks_passed": len(result.checks),
        "total_duration_ms": round(result.total_duration_ms, 2),
    }


@health_router.get("/health")
async def full_health_check(request: Request):
    """All registered checks with a per-category summary."""
    registry = _get_registry(request)
    executor = HealthCheckExecutor(registry, overall_timeout=HEALTH_TIMEOUT_SECONDS)
    result = await executor.execute_all()

    body = result.to_dict()
    body["version"] = __version__
    body["build_date"] = BUILD_DATE

    summary = {}
    for name, check_result in result.checks.items():
        check = registry.get(name)
        if check is None:
            continue
        counts = summary.setdefault(
            check.category.value, {"healthy": 0, "degraded": 0, "unhealthy": 0}
        )
        counts[check_result.status.value] += 1
    body["summary"] = summary

    return JSONResponse(status_code=_status_to_http_code(result.status), content=body)


@health_router.get("/health/{check_name}")
async def single_health_check(check_name: str, request: Request):
    """Run one check by name."""
    executor = HealthCheckExecutor(_get_registry(request))
    result = await executor.execute_single(check_name)

    if result is None:
        return JSONResponse(
            status_code=404,
            content={"error": f"Health check not found: {check_name}"},
        )

    return JSONResponse(status_code=_status_to_http_code(result.status), content=result.to_dict())


__all__ = ["health_router"]

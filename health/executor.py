# ============================================================================
# HEALTH CHECK EXECUTOR
# ============================================================================
# STATUS: Infrastructure - Parallel health check execution
# PURPOSE: Execute health checks with timeouts and aggregation
# CREATED: 17 OCT 2026
# ============================================================================
"""
Health Check Executor

Runs checks grouped by priority: groups run in order, checks within a
group run concurrently. Each check has its own timeout; a check that
raises or times out becomes an unhealthy result instead of failing the
endpoint.
"""

import asyncio
import logging
import time
from itertools import groupby
from typing import Dict, List, Optional

from health.core import (
    AggregatedHealthResult,
    HealthCheckPlugin,
    HealthCheckResult,
    HealthStatus,
)
from health.registry import HealthCheckRegistry

logger = logging.getLogger(__name__)


class HealthCheckExecutor:
    """Executes the checks of one registry."""

    def __init__(self, registry: HealthCheckRegistry, overall_timeout: float = 30.0):
        self.registry = registry
        self.overall_timeout = overall_timeout

    async def execute_all(self) -> AggregatedHealthResult:
        """Run every registered check."""
        return await self._execute(self.registry.get_checks_by_priority())

    async def execute_required(self) -> AggregatedHealthResult:
        """Run only the checks that gate /readyz."""
        return await self._execute(self.registry.get_required_checks())

    async def execute_single(self, name: str) -> Optional[HealthCheckResult]:
        check = self.registry.get(name)
        if check is None:
            return None
        return await self._execute_check(check)

    async def _execute(self, checks: List[HealthCheckPlugin]) -> AggregatedHealthResult:
        start_time = time.monotonic()
        results: Dict[str, HealthCheckResult] = {}

        for _priority, group in groupby(checks, key=lambda c: c.priority):
            group = list(group)
            if time.monotonic() - start_time >= self.overall_timeout:
                logger.warning(f"Health check overall timeout ({self.overall_timeout}s) exceeded")
                for check in group:
                    results[check.name] = HealthCheckResult.unhealthy(
                        "Skipped: overall timeout exceeded"
                    )
                continue

            group_results = await asyncio.gather(*(self._execute_check(c) for c in group))
            results.update(zip((c.name for c in group), group_results))

        return AggregatedHealthResult(
            status=HealthStatus.aggregate([r.status for r in results.values()]),
            checks=results,
            total_duration_ms=(time.monotonic() - start_time) * 1000,
        )

    async def _execute_check(self, check: HealthCheckPlugin) -> HealthCheckResult:
        """Execute a single check with timeout."""
        start_time = time.monotonic()

        try:
            result = await asyncio.wait_for(check.check(), timeout=check.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Health check {check.name} timed out after {check.timeout_seconds}s")
            result = HealthCheckResult.unhealthy(f"Timeout after {check.timeout_seconds}s")
        except Exception as e:
            logger.error(f"Health check {check.name} failed: {type(e).__name__}: {e}")
            result = HealthCheckResult.from_exception(e)

        result.duration_ms = (time.monotonic() - start_time) * 1000
        logger.debug(f"Health check {check.name}: {result.status.value} ({result.duration_ms:.1f}ms)")
        return result


__all__ = ["HealthCheckExecutor"]

# ============================================================================
# HEALTH CHECK REGISTRY
# ============================================================================
# STATUS: Infrastructure - Health check registration
# PURPOSE: Hold the check instances the health endpoints run
# CREATED: 17 OCT 2026
# ============================================================================
"""
Health Check Registry

The composition root registers check instances after the supervisor is
built; the router reads the registry from app.state.

Usage:
    registry = HealthCheckRegistry()
    registry.register(PostgresCheck(supervisor))
    checks = registry.get_checks_by_priority()
"""

import logging
from typing import Dict, List, Optional

from health.core import HealthCheckCategory, HealthCheckPlugin

logger = logging.getLogger(__name__)


class HealthCheckRegistry:
    """Named collection of health check instances."""

    def __init__(self):
        self._checks: Dict[str, HealthCheckPlugin] = {}

    def register(self, check: HealthCheckPlugin) -> None:
        """Register a check instance, replacing any check with the same name."""
        if check.name in self._checks:
            logger.warning(f"Overwriting health check: {check.name}")

        self._checks[check.name] = check
        logger.debug(
            f"Registered health check: {check.name} "
            f"(category={check.category.value}, priority={check.priority})"
        )

    def unregister(self, name: str) -> bool:
        """Remove a check by name. Returns True if it was present."""
        return self._checks.pop(name, None) is not None

    def get(self, name: str) -> Optional[HealthCheckPlugin]:
        return self._checks.get(name)

    def get_checks_by_priority(self) -> List[HealthCheckPlugin]:
        """All checks, lower priority first."""
        return sorted(self._checks.values(), key=lambda c: c.priority)

    def get_checks_by_category(self, category: HealthCheckCategory) -> List[HealthCheckPlugin]:
        return [c for c in self._checks.values() if c.category == category]

    def get_required_checks(self) -> List[HealthCheckPlugin]:
        """Checks that gate /readyz."""
        return [c for c in self.get_checks_by_priority() if c.required_for_ready]

    def clear(self) -> None:
        self._checks.clear()

    def __len__(self) -> int:
        return len(self._checks)

    def __contains__(self, name: str) -> bool:
        return name in self._checks


__all__ = ["HealthCheckRegistry"]

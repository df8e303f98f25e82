# ============================================================================
# HEALTH CHECK CORE TYPES
# ============================================================================
# STATUS: Infrastructure - Base classes for health checks
# PURPOSE: Health check plugin interface and result types
# CREATED: 17 OCT 2026
# ============================================================================
"""
Health Check Core Types

Status Hierarchy (worst wins):
- healthy: Pool active, credential fresh
- degraded: Operational with warnings (pool saturated, recovery in progress,
  credential inside the refresh window)
- unhealthy: Cannot serve queries

Categories (execution order by priority):
1. Startup (10): Configuration present
2. Credentials (20): Token manager state
3. Database (30): Pool state and connectivity
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class HealthStatus(str, Enum):
    """Health check status values."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @classmethod
    def aggregate(cls, statuses: List["HealthStatus"]) -> "HealthStatus":
        """Aggregate multiple statuses (worst wins)."""
        if not statuses:
            return cls.HEALTHY
        return max(statuses, key=lambda s: s.severity)


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


class HealthCheckCategory(str, Enum):
    """Health check categories with default priorities."""
    STARTUP = "startup"           # Priority 10: Configuration
    CREDENTIALS = "credentials"   # Priority 20: Token manager
    DATABASE = "database"         # Priority 30: Pool, PostgreSQL

    @property
    def default_priority(self) -> int:
        return {
            HealthCheckCategory.STARTUP: 10,
            HealthCheckCategory.CREDENTIALS: 20,
            HealthCheckCategory.DATABASE: 30,
        }[self]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HealthCheckResult:
    """Result from a single health check."""
    status: HealthStatus
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0
    checked_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def healthy(cls, message: str = None, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.HEALTHY, message=message, details=details)

    @classmethod
    def degraded(cls, message: str, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.DEGRADED, message=message, details=details)

    @classmethod
    def unhealthy(cls, message: str, **details) -> "HealthCheckResult":
        return cls(status=HealthStatus.UNHEALTHY, message=message, details=details)

    @classmethod
    def from_exception(cls, e: Exception) -> "HealthCheckResult":
        """Unhealthy result carrying only the exception type and message."""
        return cls(
            status=HealthStatus.UNHEALTHY,
            message=f"{type(e).__name__}: {e}",
            details={"exception_type": type(e).__name__},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON response."""
        result = {
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        if self.details:
            result["details"] = self.details
        return result


@dataclass
class AggregatedHealthResult:
    """Aggregated result from multiple health checks."""
    status: HealthStatus
    checks: Dict[str, HealthCheckResult]
    total_duration_ms: float
    checked_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": {name: result.to_dict() for name, result in self.checks.items()},
            "total_duration_ms": round(self.total_duration_ms, 2),
            "checked_at": self.checked_at.isoformat(),
        }


class HealthCheckPlugin(ABC):
    """
    Base class for health checks.

    Checks are instances bound to the objects they inspect (supervisor,
    token manager) and registered by the composition root.

    Attributes:
        name: Unique identifier for the check
        category: Check category (determines default priority)
        priority: Execution priority (lower runs first)
        timeout_seconds: Max execution time before timeout
        required_for_ready: If True, an unhealthy result fails /readyz
    """

    name: str = "unnamed"
    category: HealthCheckCategory = HealthCheckCategory.DATABASE
    priority: Optional[int] = None
    timeout_seconds: float = 5.0
    required_for_ready: bool = True

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.priority is None:
            cls.priority = cls.category.default_priority

    @abstractmethod
    async def check(self) -> HealthCheckResult:
        """Execute health check."""


__all__ = [
    "HealthStatus",
    "HealthCheckCategory",
    "HealthCheckResult",
    "AggregatedHealthResult",
    "HealthCheckPlugin",
]

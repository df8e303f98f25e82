# ============================================================================
# CREDENTIAL HEALTH CHECKS
# ============================================================================
# STATUS: Infrastructure - Managed database configuration and token state
# PURPOSE: Report whether configuration is complete and the token is fresh
# CREATED: 17 OCT 2026
# ============================================================================
"""
Credential Health Checks

- ManagedConfigCheck (startup, 10): required variables for the auth path
- ManagedCredentialCheck (credentials, 20): cached token and its TTL

Neither check ever includes the token itself.
"""

import logging

from core.config import ManagedDatabaseConfig
from health.core import HealthCheckCategory, HealthCheckPlugin, HealthCheckResult
from infrastructure.auth import TokenManager, resolve_auth_mode

logger = logging.getLogger(__name__)


class ManagedConfigCheck(HealthCheckPlugin):
    """
    Configuration health check.

    Verifies the variables required by the resolved auth path are present.
    Does not contact the identity provider.
    """

    name = "config"
    category = HealthCheckCategory.STARTUP
    timeout_seconds = 1.0

    def __init__(self, config: ManagedDatabaseConfig):
        self.config = config

    async def check(self) -> HealthCheckResult:
        if not self.config.enabled:
            return HealthCheckResult.healthy(
                message="Managed database disabled (plain connection string)",
                managed=False,
            )

        auth_mode = resolve_auth_mode(self.config)
        missing = self.config.missing_required()
        if missing:
            return HealthCheckResult.unhealthy(
                message=f"Missing required config: {', '.join(missing)}",
                missing=missing,
                auth_type=auth_mode.label,
            )

        return HealthCheckResult.healthy(
            message="All required config present",
            managed=True,
            auth_type=auth_mode.label,
            instance=self.config.instance_name,
            hostname=self.config.hostname,
        )


class ManagedCredentialCheck(HealthCheckPlugin):
    """
    Token manager health check.

    DEGRADED when nothing is cached yet or the credential is already inside
    the refresh window; the next pool connection will fetch a new one.
    """

    name = "managed_credential"
    category = HealthCheckCategory.CREDENTIALS
    timeout_seconds = 1.0
    required_for_ready = False

    def __init__(self, token_manager: TokenManager):
        self.token_manager = token_manager

    async def check(self) -> HealthCheckResult:
        status = self.token_manager.get_status()

        if not status["token_cached"]:
            return HealthCheckResult.degraded(message="No database credential cached", **status)

        if status["ttl_seconds"] <= status["refresh_buffer_seconds"]:
            return HealthCheckResult.degraded(
                message=f"Credential inside refresh window (TTL {status['ttl_seconds']:.0f}s)",
                **status,
            )

        return HealthCheckResult.healthy(
            message=f"Credential valid, TTL {status['ttl_seconds']:.0f}s",
            **status,
        )


__all__ = ["ManagedConfigCheck", "ManagedCredentialCheck"]

# ============================================================================
# DATABASE TOKEN MANAGER
# ============================================================================
# STATUS: Infrastructure - Credential cache with proactive refresh
# PURPOSE: Single source of truth for the current database password
# CREATED: 15 OCT 2026
# ============================================================================
"""
Database token manager.

Caches the current Credential and refreshes it before expiry.

Token Flow:
-----------
1. Caller asks for get_token() / get_connection_string()
2. Cached credential returned while now < expires_at - 5 minutes
3. Otherwise CredentialFetcher issues a new one, which replaces the cache
4. clear_cache() drops the credential (pool auth-failure recovery)

Concurrent stale callers share one fetch: the refresh runs under an
asyncio.Lock and the cache is re-checked once the lock is held.

Usage:
------
```python
manager = await create_token_manager(get_settings().database)
if manager is not None:
    conninfo = await manager.get_connection_string()
```
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

from core.config import ManagedDatabaseConfig, get_settings
from core.contracts import AuthMode
from core.logging import log_context
from core.models.credential import Credential
from infrastructure.auth.auth_mode import resolve_auth_mode
from infrastructure.auth.credential_fetcher import CredentialFetcher
from infrastructure.auth.exceptions import ConfigurationError
from infrastructure.auth.secret_store import resolve_client_secret

logger = logging.getLogger(__name__)

# Refresh tokens when less than 5 minutes until expiry
REFRESH_BUFFER = timedelta(minutes=5)

LOCAL_DEV_FALLBACK_USER = "local-dev-user"


@dataclass
class TokenCache:
    """Single-slot credential cache. The slot is replaced, never mutated."""
    credential: Optional[Credential] = None

    def get_if_valid(self, buffer: timedelta, now: Optional[datetime] = None) -> Optional[str]:
        """Get token if it stays valid for longer than buffer."""
        credential = self.credential
        if credential is None or not credential.is_usable(buffer, now):
            return None
        return credential.token.get_secret_value()

    def set(self, credential: Credential) -> None:
        """Cache a new credential."""
        self.credential = credential

    def invalidate(self) -> None:
        """Clear the cache."""
        self.credential = None

    def ttl_seconds(self) -> float:
        """Get remaining TTL in seconds."""
        credential = self.credential
        if credential is None:
            return 0
        return credential.ttl_seconds()


class TokenManager:
    """
    Returns a valid database password on demand, refreshing proactively.

    Dependencies are injected: the fetcher does the network work, the
    auth mode is resolved once by the caller (or from config).
    """

    def __init__(
        self,
        config: ManagedDatabaseConfig,
        fetcher: CredentialFetcher,
        auth_mode: Optional[AuthMode] = None,
        refresh_buffer: timedelta = REFRESH_BUFFER,
    ):
        self.config = config
        self.fetcher = fetcher
        self.auth_mode = auth_mode or resolve_auth_mode(config)
        self.refresh_buffer = refresh_buffer
        self.cache = TokenCache()
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # TOKEN
    # ------------------------------------------------------------------

    async def get_token(self) -> str:
        """
        Get a database password valid for at least the refresh buffer.

        Raises:
            IdentityError / CredentialExchangeError: From the fetcher, unchanged
        """
        cached = self.cache.get_if_valid(self.refresh_buffer)
        if cached:
            logger.debug(f"Using cached database token, TTL: {self.cache.ttl_seconds():.0f}s")
            return cached

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited
            cached = self.cache.get_if_valid(self.refresh_buffer)
            if cached:
                return cached

            with log_context(operation="token_refresh", auth_mode=self.auth_mode.label):
                logger.info("Generating new database credential...")
                credential = await self.fetcher.fetch_credential(self.auth_mode)

            self.cache.set(credential)
            logger.info(f"Database credential cached until {credential.expires_at.isoformat()}")
            return credential.token.get_secret_value()

    def clear_cache(self) -> None:
        """Discard the cached credential. Idempotent."""
        self.cache.invalidate()
        logger.info("Token cache cleared")

    # ------------------------------------------------------------------
    # CONNECTION DETAILS
    # ------------------------------------------------------------------

    @property
    def username(self) -> str:
        """
        PostgreSQL user name.

        Local development prefers the developer identity (PGUSER);
        otherwise the service principal client id.
        """
        if self.auth_mode.local:
            return self.config.dev_identity or self.config.client_id or LOCAL_DEV_FALLBACK_USER
        return self.config.client_id

    async def get_connection_params(self) -> Dict[str, Any]:
        """Keyword connection parameters for psycopg with a current token."""
        token = await self.get_token()
        return {
            "host": self.config.hostname,
            "port": self.config.port,
            "dbname": self.config.database,
            "user": self.username,
            "password": token,
            "sslmode": "require",
        }

    async def get_connection_string(self) -> str:
        """PostgreSQL URI with a current token; credentials percent-encoded."""
        token = await self.get_token()
        user = quote(self.username, safe="")
        password = quote(token, safe="")
        database = quote(self.config.database, safe="")
        return (
            f"postgresql://{user}:{password}@{self.config.hostname}:{self.config.port}"
            f"/{database}?sslmode=require"
        )

    # ------------------------------------------------------------------
    # STATUS / LIFECYCLE
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Token status for health checks. Never includes the token."""
        credential = self.cache.credential
        return {
            "auth_type": self.auth_mode.label,
            "token_cached": credential is not None,
            "ttl_seconds": round(credential.ttl_seconds(), 1) if credential else 0,
            "expires_at": credential.expires_at.isoformat() if credential else None,
            "refresh_buffer_seconds": self.refresh_buffer.total_seconds(),
        }

    async def aclose(self) -> None:
        """Clear the cache and release fetcher transports."""
        self.cache.invalidate()
        await self.fetcher.aclose()


async def create_token_manager(
    config: Optional[ManagedDatabaseConfig] = None,
) -> Optional[TokenManager]:
    """
    Build a TokenManager from configuration.

    Returns None when USE_MANAGED_DB is not enabled.

    Raises:
        ConfigurationError: Required variables for the selected mode are missing
        SecretStoreError: Production secret could not be read and no fallback set
    """
    config = config or get_settings().database
    if not config.enabled:
        return None

    missing = config.missing_required()
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        raise ConfigurationError(
            f"Missing managed database configuration: {', '.join(missing)}",
            missing=missing,
        )

    auth_mode = resolve_auth_mode(config)

    client_secret = ""
    if not auth_mode.local:
        client_secret = await resolve_client_secret(config)

    logger.info(
        f"Initializing token manager for {config.hostname} "
        f"(mode: {'LOCAL DEVELOPMENT' if auth_mode.local else 'PRODUCTION'}, "
        f"auth: {auth_mode.label})"
    )

    fetcher = CredentialFetcher(config, client_secret=client_secret)
    return TokenManager(config, fetcher, auth_mode=auth_mode)


__all__ = [
    "REFRESH_BUFFER",
    "TokenCache",
    "TokenManager",
    "create_token_manager",
]

# ============================================================================
# AUTHENTICATION MODULE
# ============================================================================
# STATUS: Infrastructure - Managed database credentials
# PURPOSE: OAuth-issued PostgreSQL passwords with caching and refresh
# CREATED: 15 OCT 2026
# ============================================================================
"""
Authentication module.

Provides short-lived PostgreSQL passwords for a managed Postgres service:
- Auth mode resolution (static token / developer identity / service principal)
- Credential exchange against the workspace credential API
- Token caching with proactive refresh
- Schema name resolution shared by the pool and migration tooling

Usage:
    from infrastructure.auth import create_token_manager

    manager = await create_token_manager()
    conn_str = await manager.get_connection_string()
"""

from infrastructure.auth.auth_mode import resolve_auth_mode
from infrastructure.auth.credential_fetcher import CredentialFetcher
from infrastructure.auth.exceptions import (
    ConfigurationError,
    CredentialExchangeError,
    IdentityError,
    ManagedDatabaseError,
    SecretStoreError,
)
from infrastructure.auth.schema import resolve_schema_name
from infrastructure.auth.token_manager import (
    REFRESH_BUFFER,
    TokenCache,
    TokenManager,
    create_token_manager,
)

__all__ = [
    'resolve_auth_mode',
    'CredentialFetcher',
    'ConfigurationError',
    'CredentialExchangeError',
    'IdentityError',
    'ManagedDatabaseError',
    'SecretStoreError',
    'resolve_schema_name',
    'REFRESH_BUFFER',
    'TokenCache',
    'TokenManager',
    'create_token_manager',
]

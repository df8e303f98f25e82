# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Infrastructure - External service integration
# PURPOSE: Identity provider, credential API and secret store access
# CREATED: 15 OCT 2026
# ============================================================================
"""
Infrastructure module.

Provides:
- TokenManager / create_token_manager: short-lived database passwords
- CredentialFetcher: identity token + credential exchange
- resolve_schema_name: per-user schema naming

Usage:
    from infrastructure import create_token_manager

    manager = await create_token_manager()
    if manager is not None:
        params = await manager.get_connection_params()
"""

from infrastructure.auth import (
    ConfigurationError,
    CredentialExchangeError,
    CredentialFetcher,
    IdentityError,
    ManagedDatabaseError,
    SecretStoreError,
    TokenManager,
    create_token_manager,
    resolve_auth_mode,
    resolve_schema_name,
)

__all__ = [
    # Token lifecycle
    'TokenManager',
    'create_token_manager',
    'CredentialFetcher',
    'resolve_auth_mode',
    'resolve_schema_name',
    # Errors
    'ManagedDatabaseError',
    'ConfigurationError',
    'IdentityError',
    'CredentialExchangeError',
    'SecretStoreError',
]

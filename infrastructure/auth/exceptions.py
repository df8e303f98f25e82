# ============================================================================
# AUTH EXCEPTIONS
# ============================================================================
# STATUS: Infrastructure - Error taxonomy for credential acquisition
# PURPOSE: Distinguish configuration, identity and exchange failures
# CREATED: 14 OCT 2026
# ============================================================================
"""
Exceptions raised while obtaining database credentials.

None of these are retried by the component that raises them; retry policy
belongs to the caller. Messages never contain tokens or secrets.
"""

from typing import List, Optional


class ManagedDatabaseError(Exception):
    """Base exception for the managed-database credential subsystem."""


class ConfigurationError(ManagedDatabaseError):
    """Required configuration is missing or inconsistent."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        self.missing = missing or []
        super().__init__(message)


class IdentityError(ManagedDatabaseError):
    """The identity provider could not issue a bearer token."""

    def __init__(self, message: str, auth_path: str = None):
        self.auth_path = auth_path
        super().__init__(message)


class CredentialExchangeError(ManagedDatabaseError):
    """The credential API rejected the bearer token or returned a bad body."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class SecretStoreError(IdentityError):
    """The service principal secret could not be read from the secret store."""


__all__ = [
    "ManagedDatabaseError",
    "ConfigurationError",
    "IdentityError",
    "CredentialExchangeError",
    "SecretStoreError",
]

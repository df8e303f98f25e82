# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums and tagged values
# PURPOSE: Auth mode and pool lifecycle contracts shared across components
# CREATED: 14 OCT 2026
# EXPORTS: AuthKind, AuthMode, PoolState
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the managed-database credential service.

AuthMode is computed once from configuration (see
infrastructure.auth.auth_mode.resolve_auth_mode) and threaded through the
credential fetcher and the token manager, instead of re-evaluating
environment checks at each call site.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


# ============================================================================
# AUTH MODE
# ============================================================================

class AuthKind(str, Enum):
    """Which identity path produces the bearer token for the exchange call."""
    STATIC_TOKEN = "static_token"              # Pre-configured long-lived secret
    FEDERATED_IDENTITY = "federated_identity"  # Azure AD token


class AuthMode(BaseModel):
    """
    Tagged auth mode: StaticToken | FederatedIdentity(local).

    local=True means a developer identity (az login / cached credential);
    local=False means a confidential client (service principal).
    """
    model_config = ConfigDict(frozen=True)

    kind: AuthKind
    local: bool = False

    @classmethod
    def static_token(cls) -> "AuthMode":
        return cls(kind=AuthKind.STATIC_TOKEN, local=True)

    @classmethod
    def federated(cls, local: bool) -> "AuthMode":
        return cls(kind=AuthKind.FEDERATED_IDENTITY, local=local)

    @property
    def is_static(self) -> bool:
        return self.kind == AuthKind.STATIC_TOKEN

    @property
    def label(self) -> str:
        """Short label for logs and health output."""
        if self.is_static:
            return "static_token"
        return "federated_local" if self.local else "federated_service_principal"


# ============================================================================
# POOL LIFECYCLE
# ============================================================================

class PoolState(str, Enum):
    """
    Connection pool supervisor states.

    State transitions:
        UNINITIALIZED -> ACTIVE
        ACTIVE -> RECOVERING -> ACTIVE (new pool)
                             -> FAILED (rebuild raised)
        FAILED -> RECOVERING (next auth failure)
        any -> CLOSED
    """
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    RECOVERING = "recovering"
    FAILED = "failed"
    CLOSED = "closed"


__all__ = [
    "AuthKind",
    "AuthMode",
    "PoolState",
]

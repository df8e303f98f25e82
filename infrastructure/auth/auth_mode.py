# ============================================================================
# AUTH MODE RESOLUTION
# ============================================================================
# STATUS: Infrastructure - Single decision point for the identity path
# PURPOSE: Map configuration to StaticToken | FederatedIdentity(local)
# CREATED: 14 OCT 2026
# ============================================================================
"""
Auth mode resolution.

Decision table:

    local dev | DB_STATIC_TOKEN + DB_WORKSPACE_URL | mode
    ----------+------------------------------------+------------------------------
    yes       | yes                                | StaticToken
    yes       | no                                 | FederatedIdentity(local=True)
    no        | (ignored)                          | FederatedIdentity(local=False)

Local dev means APP_ENV=development and no SECRET_STORE_NAME, so a static
token is never used once a secret store is configured.
"""

from core.config import ManagedDatabaseConfig
from core.contracts import AuthMode


def resolve_auth_mode(config: ManagedDatabaseConfig) -> AuthMode:
    """Compute the auth mode once from configuration."""
    if config.has_static_token:
        return AuthMode.static_token()
    return AuthMode.federated(local=config.is_local_dev)


__all__ = ["resolve_auth_mode"]

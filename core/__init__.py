# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export contracts and credential models
# CREATED: 14 OCT 2026
# ============================================================================

from core.contracts import AuthKind, AuthMode, PoolState
from core.models import Credential, CredentialResponse

__all__ = [
    # Enums / tagged values
    "AuthKind",
    "AuthMode",
    "PoolState",
    # Models
    "Credential",
    "CredentialResponse",
]

# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for Pydantic models
# CREATED: 14 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Pydantic models for credentials issued by the managed database service.
"""

from core.models.credential import Credential, CredentialResponse

__all__ = [
    "Credential",
    "CredentialResponse",
]

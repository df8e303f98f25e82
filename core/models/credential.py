# ============================================================================
# DATABASE CREDENTIAL MODELS
# ============================================================================
# STATUS: Core - Credential value types
# PURPOSE: Short-lived database password and the exchange API response
# CREATED: 14 OCT 2026
# ============================================================================
"""
Database Credential Models

Credential is the immutable (token, expires_at) pair issued by the
credential API. It is replaced, never mutated, on every refresh.

The token is held as a SecretStr so it never shows up in repr(), logs or
tracebacks; call token.get_secret_value() at the point of use.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Credential(BaseModel):
    """Usable database password with its absolute expiry."""
    model_config = ConfigDict(frozen=True)

    token: SecretStr
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _normalize_expiry(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def ttl_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds until expiry (negative once expired)."""
        now = now or datetime.now(timezone.utc)
        return (self.expires_at - now).total_seconds()

    def is_usable(self, buffer: timedelta, now: Optional[datetime] = None) -> bool:
        """True while now < expires_at - buffer."""
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at - buffer


class CredentialResponse(BaseModel):
    """
    Body returned by POST /api/2.0/database/credentials.

    Only the fields used here are declared; everything else is ignored.
    """
    model_config = ConfigDict(extra="ignore")

    token: str = Field(min_length=1)
    expiration_time: datetime

    def to_credential(self) -> Credential:
        return Credential(token=SecretStr(self.token), expires_at=self.expiration_time)


__all__ = ["Credential", "CredentialResponse"]

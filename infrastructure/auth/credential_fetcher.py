# ============================================================================
# DATABASE CREDENTIAL FETCHER
# ============================================================================
# STATUS: Infrastructure - Identity token + credential exchange
# PURPOSE: Trade a bearer token for a short-lived PostgreSQL password
# CREATED: 15 OCT 2026
# ============================================================================
"""
Database credential fetcher.

Produces a (token, expires_at) Credential in two steps:

1. Bearer token, by auth mode:
   - StaticToken:                      DB_STATIC_TOKEN used as-is
   - FederatedIdentity(local=True):    DefaultAzureCredential (az login)
   - FederatedIdentity(local=False):   ClientSecretCredential (service principal)

2. Exchange:
   POST {DB_WORKSPACE_URL}/api/2.0/database/credentials
   Authorization: Bearer <token>
   {"instance_names": [DB_INSTANCE_NAME], "request_id": <uuid4>}
   -> {"token": "...", "expiration_time": "<ISO-8601>"}

expires_at is taken exactly from expiration_time; the refresh buffer is
applied by the token manager, not here.

Nothing is retried. Bearer tokens, database tokens and request bodies are
never logged.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Optional

import httpx
from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity.aio import ClientSecretCredential, DefaultAzureCredential
from pydantic import ValidationError

from core.config import ManagedDatabaseConfig
from core.contracts import AuthMode
from core.models.credential import Credential, CredentialResponse
from infrastructure.auth.exceptions import CredentialExchangeError, IdentityError

logger = logging.getLogger(__name__)

CREDENTIALS_PATH = "/api/2.0/database/credentials"

_LOCAL_REMEDIATION = (
    "Local development auth failed. Either run `az login` so "
    "DefaultAzureCredential can find a developer session, or set "
    "DB_STATIC_TOKEN=<personal access token> (Settings -> Developer -> "
    "Access Tokens) and restart."
)
_SERVICE_PRINCIPAL_REMEDIATION = (
    "Service principal auth failed. Check DB_TENANT_ID, DB_CLIENT_ID and "
    "that the client secret in SECRET_STORE_NAME (or DB_CLIENT_SECRET) is "
    "valid and not expired."
)


class CredentialFetcher:
    """
    Stateless request/response client for database credentials.

    Holds only reusable transport objects (HTTP client, identity
    credential); no credential state. Call aclose() at shutdown.

    Usage:
        fetcher = CredentialFetcher(config, client_secret=secret)
        credential = await fetcher.fetch_credential(mode)
    """

    def __init__(
        self,
        config: ManagedDatabaseConfig,
        client_secret: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        identity_credential: Any = None,
    ):
        """
        Args:
            config: Managed database configuration
            client_secret: Service principal secret (production mode only)
            http_client: Optional injected client (owned by caller)
            identity_credential: Optional injected azure async token credential
        """
        self.config = config
        self._client_secret = client_secret
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._identity_credential = identity_credential
        self._owns_identity_credential = identity_credential is None

    # ------------------------------------------------------------------
    # PUBLIC API
    # ------------------------------------------------------------------

    async def fetch_credential(self, mode: AuthMode) -> Credential:
        """
        Obtain a fresh database credential.

        Raises:
            IdentityError: Bearer token could not be obtained
            CredentialExchangeError: Exchange call failed or returned a bad body
        """
        if mode.is_static:
            logger.info("Using static token for credential exchange (local development)")
            bearer = self._static_bearer()
        else:
            bearer = await self._acquire_identity_token(mode)

        credential = await self._exchange(bearer, mode)
        logger.info(
            f"Database credential issued for instance {self.config.instance_name}, "
            f"expires {credential.expires_at.isoformat()}"
        )
        return credential

    async def aclose(self) -> None:
        """Close owned HTTP client and identity credential."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self._owns_identity_credential and self._identity_credential is not None:
            await self._identity_credential.close()
            self._identity_credential = None

    # ------------------------------------------------------------------
    # BEARER TOKEN
    # ------------------------------------------------------------------

    def _static_bearer(self) -> str:
        if not self.config.static_token:
            raise IdentityError(
                "Static token mode selected but DB_STATIC_TOKEN is empty",
                auth_path="static_token",
            )
        return self.config.static_token

    def _get_identity_credential(self, mode: AuthMode):
        if self._identity_credential is not None:
            return self._identity_credential

        if mode.local:
            logger.info("Using DefaultAzureCredential (developer identity)")
            self._identity_credential = DefaultAzureCredential()
        else:
            if not self.config.tenant_id or not self._client_secret:
                raise IdentityError(
                    "Missing service principal credentials: DB_TENANT_ID and a "
                    "client secret are required outside local development",
                    auth_path=mode.label,
                )
            logger.info(f"Using service principal {self.config.client_id[:8]}...")
            self._identity_credential = ClientSecretCredential(
                self.config.tenant_id,
                self.config.client_id,
                self._client_secret,
            )
        return self._identity_credential

    async def _acquire_identity_token(self, mode: AuthMode) -> str:
        credential = self._get_identity_credential(mode)
        remediation = _LOCAL_REMEDIATION if mode.local else _SERVICE_PRINCIPAL_REMEDIATION
        timeout = self.config.http_timeout_seconds

        try:
            access_token = await asyncio.wait_for(
                credential.get_token(self.config.identity_scope),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Identity token request timed out after {timeout}s ({mode.label})")
            raise IdentityError(
                f"Identity provider did not respond within {timeout}s ({mode.label})",
                auth_path=mode.label,
            ) from e
        except ClientAuthenticationError as e:
            logger.error("=" * 60)
            logger.error(f"FAILED TO GET IDENTITY TOKEN ({mode.label})")
            logger.error("=" * 60)
            logger.error(f"Error: {type(e).__name__}: {e.message}")
            logger.error(remediation)
            logger.error("=" * 60)
            raise IdentityError(f"{remediation} ({type(e).__name__})", auth_path=mode.label) from e
        except AzureError as e:
            logger.error(f"Identity provider error ({mode.label}): {type(e).__name__}")
            raise IdentityError(
                f"Identity provider error ({mode.label}): {type(e).__name__}",
                auth_path=mode.label,
            ) from e

        if not access_token or not access_token.token:
            raise IdentityError(
                f"Identity provider returned an empty token ({mode.label})",
                auth_path=mode.label,
            )

        logger.debug(f"Identity token obtained ({mode.label})")
        return access_token.token

    # ------------------------------------------------------------------
    # EXCHANGE
    # ------------------------------------------------------------------

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.http_timeout_seconds)
            )
        return self._http_client

    def _request_body(self) -> Dict[str, Any]:
        return {
            "instance_names": [self.config.instance_name],
            "request_id": str(uuid.uuid4()),
        }

    async def _exchange(self, bearer: str, mode: AuthMode) -> Credential:
        url = f"{self.config.workspace_url}{CREDENTIALS_PATH}"
        logger.info(f"Requesting database credential for instance: {self.config.instance_name}")

        try:
            response = await self._get_http_client().post(
                url,
                json=self._request_body(),
                headers={"Authorization": f"Bearer {bearer}"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Credential exchange timed out: {url}")
            raise CredentialExchangeError(f"Credential exchange timed out: {url}") from e
        except httpx.HTTPError as e:
            logger.error(f"Credential exchange transport error: {type(e).__name__}: {url}")
            raise CredentialExchangeError(
                f"Credential exchange request failed ({type(e).__name__}): {url}"
            ) from e

        if not response.is_success:
            detail = response.text
            status = response.status_code
            if status in (401, 403) and mode.is_static:
                message = (
                    f"Credential API authentication failed ({status}). Check that "
                    f"DB_STATIC_TOKEN is valid and not expired. Details: {detail}"
                )
            else:
                message = f"Credential API call failed ({status}): {detail}"
            logger.error(f"Credential API returned {status} for instance {self.config.instance_name}")
            raise CredentialExchangeError(message, status_code=status)

        try:
            payload = CredentialResponse.model_validate(response.json())
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise CredentialExchangeError(
                f"Credential API returned an invalid body (fields: {', '.join(fields)})",
                status_code=response.status_code,
            ) from e
        except ValueError as e:
            raise CredentialExchangeError(
                "Credential API returned a non-JSON body",
                status_code=response.status_code,
            ) from e

        return payload.to_credential()


__all__ = ["CREDENTIALS_PATH", "CredentialFetcher"]

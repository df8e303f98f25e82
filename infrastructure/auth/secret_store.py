# ============================================================================
# SERVICE PRINCIPAL SECRET STORE
# ============================================================================
# STATUS: Infrastructure - Azure Key Vault secret retrieval
# PURPOSE: Read the confidential-client secret for production auth
# CREATED: 15 OCT 2026
# ============================================================================
"""
Service principal secret retrieval.

Production mode reads the client secret from Azure Key Vault
(SECRET_STORE_NAME) using DefaultAzureCredential. If Key Vault fails and
DB_CLIENT_SECRET is set, that value is used instead and a WARNING is
logged: an environment variable is a weaker place to keep the secret, so
the fallback has to be visible.
"""

import asyncio
import logging

from azure.core.exceptions import AzureError
from azure.identity.aio import DefaultAzureCredential
from azure.keyvault.secrets.aio import SecretClient

from core.config import DEFAULT_HTTP_TIMEOUT_SECONDS, ManagedDatabaseConfig
from infrastructure.auth.exceptions import SecretStoreError

logger = logging.getLogger(__name__)


async def _read_secret(vault_url: str, secret_name: str):
    async with DefaultAzureCredential() as credential:
        async with SecretClient(vault_url=vault_url, credential=credential) as client:
            return await client.get_secret(secret_name)


async def fetch_secret_from_key_vault(
    vault_url: str,
    secret_name: str,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
) -> str:
    """
    Read one secret value from Key Vault.

    The whole read (credential probing included) is bounded by timeout.

    Raises:
        SecretStoreError: If the vault call fails, times out, or the value is empty
    """
    try:
        secret = await asyncio.wait_for(_read_secret(vault_url, secret_name), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise SecretStoreError(
            f"Key Vault {vault_url} did not respond within {timeout}s",
            auth_path="service_principal",
        ) from e
    except AzureError as e:
        raise SecretStoreError(
            f"Failed to read secret '{secret_name}' from {vault_url}: {type(e).__name__}",
            auth_path="service_principal",
        ) from e

    if not secret.value:
        raise SecretStoreError(
            f"Secret '{secret_name}' in {vault_url} is empty",
            auth_path="service_principal",
        )
    return secret.value


async def resolve_client_secret(config: ManagedDatabaseConfig) -> str:
    """
    Get the service principal secret: Key Vault first, then DB_CLIENT_SECRET.

    Raises:
        SecretStoreError: If Key Vault fails and no fallback is configured
    """
    logger.info(f"Retrieving client secret from Key Vault: {config.secret_store_name}")
    try:
        secret = await fetch_secret_from_key_vault(
            config.secret_store_url,
            config.client_secret_name,
            timeout=config.http_timeout_seconds,
        )
        logger.info("Client secret retrieved from Key Vault")
        return secret
    except SecretStoreError as e:
        if not config.client_secret_fallback:
            logger.error(f"Key Vault secret retrieval failed and no fallback is set: {e}")
            raise

        logger.warning(
            f"Key Vault secret retrieval failed ({e}); "
            "FALLING BACK to DB_CLIENT_SECRET environment variable"
        )
        return config.client_secret_fallback


__all__ = ["fetch_secret_from_key_vault", "resolve_client_secret"]

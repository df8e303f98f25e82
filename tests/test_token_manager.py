# ============================================================================
# TOKEN MANAGER TESTS
# ============================================================================
# STATUS: Tests - Credential caching, proactive refresh, connection details
# PURPOSE: Verify the 5-minute refresh buffer and single-flight refresh
# CREATED: 18 OCT 2026
# ============================================================================
"""
Token Manager Tests

Covers:
1. Cache hit inside the validity window (no fetch)
2. Proactive refresh inside the 5-minute buffer
3. Expired cache
4. Concurrent stale callers share one fetch
5. clear_cache() and fetch failures
6. Connection string percent-encoding round trip
7. Username selection per auth mode
8. create_token_manager() validation and wiring

Run with:
    pytest tests/test_token_manager.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import unquote, urlsplit

import pytest

from core.config import ManagedDatabaseConfig
from core.contracts import AuthMode
from core.models import Credential
from infrastructure.auth import (
    REFRESH_BUFFER,
    ConfigurationError,
    CredentialExchangeError,
    TokenManager,
    create_token_manager,
)


BASE_ENV = {
    "USE_MANAGED_DB": "true",
    "DB_WORKSPACE_URL": "https://workspace.example.net",
    "DB_HOSTNAME": "instance.database.example.net",
    "DB_DATABASE_NAME": "appdb",
    "DB_INSTANCE_NAME": "app-instance",
}

PRODUCTION_ENV = {
    **BASE_ENV,
    "DB_TENANT_ID": "tenant-1",
    "DB_CLIENT_ID": "sp-client-id",
    "SECRET_STORE_NAME": "prod-vault",
}


# ============================================================================
# HELPERS
# ============================================================================

def _credential(token: str, expires_in: timedelta) -> Credential:
    return Credential(token=token, expires_at=datetime.now(timezone.utc) + expires_in)


def _fetcher(*credentials):
    fetcher = MagicMock()
    fetcher.fetch_credential = AsyncMock(side_effect=list(credentials))
    fetcher.aclose = AsyncMock()
    return fetcher


def _manager(fetcher, env=None, mode=None) -> TokenManager:
    config = ManagedDatabaseConfig.from_env(env or PRODUCTION_ENV)
    return TokenManager(config, fetcher, auth_mode=mode or AuthMode.federated(local=False))


# ============================================================================
# CACHING AND REFRESH
# ============================================================================

class TestTokenCaching:

    def test_refresh_buffer_is_five_minutes(self):
        assert REFRESH_BUFFER == timedelta(minutes=5)

    def test_first_call_fetches(self):
        fetcher = _fetcher(_credential("tok-1", timedelta(hours=1)))
        manager = _manager(fetcher)

        assert asyncio.run(manager.get_token()) == "tok-1"
        fetcher.fetch_credential.assert_awaited_once()

    def test_cache_hit_inside_window(self):
        fetcher = _fetcher()
        manager = _manager(fetcher)
        manager.cache.set(_credential("cached", timedelta(minutes=30)))

        assert asyncio.run(manager.get_token()) == "cached"
        fetcher.fetch_credential.assert_not_awaited()

    def test_proactive_refresh_inside_buffer(self):
        fetcher = _fetcher(_credential("fresh", timedelta(hours=1)))
        manager = _manager(fetcher)
        manager.cache.set(_credential("old", timedelta(minutes=4)))

        assert asyncio.run(manager.get_token()) == "fresh"
        fetcher.fetch_credential.assert_awaited_once()
        assert manager.cache.credential.token.get_secret_value() == "fresh"

    def test_expired_cache_refreshes(self):
        fetcher = _fetcher(_credential("fresh", timedelta(hours=1)))
        manager = _manager(fetcher)
        manager.cache.set(_credential("expired", timedelta(minutes=-10)))

        assert asyncio.run(manager.get_token()) == "fresh"
        fetcher.fetch_credential.assert_awaited_once()

    def test_repeated_calls_use_cache(self):
        fetcher = _fetcher(_credential("tok-1", timedelta(hours=1)))
        manager = _manager(fetcher)

        async def _run():
            return [await manager.get_token() for _ in range(3)]

        assert asyncio.run(_run()) == ["tok-1", "tok-1", "tok-1"]
        assert fetcher.fetch_credential.await_count == 1

    def test_concurrent_stale_callers_share_one_fetch(self):
        async def _slow_fetch(mode):
            await asyncio.sleep(0.01)
            return _credential("shared", timedelta(hours=1))

        fetcher = MagicMock()
        fetcher.fetch_credential = AsyncMock(side_effect=_slow_fetch)
        manager = _manager(fetcher)

        async def _run():
            return await asyncio.gather(*(manager.get_token() for _ in range(5)))

        assert asyncio.run(_run()) == ["shared"] * 5
        assert fetcher.fetch_credential.await_count == 1

    def test_clear_cache_forces_fetch(self):
        fetcher = _fetcher(
            _credential("tok-1", timedelta(hours=1)),
            _credential("tok-2", timedelta(hours=1)),
        )
        manager = _manager(fetcher)

        async def _run():
            first = await manager.get_token()
            manager.clear_cache()
            manager.clear_cache()
            return first, await manager.get_token()

        assert asyncio.run(_run()) == ("tok-1", "tok-2")

    def test_fetch_error_propagates_and_cache_stays_empty(self):
        fetcher = MagicMock()
        fetcher.fetch_credential = AsyncMock(
            side_effect=CredentialExchangeError("Credential API call failed (500)", status_code=500)
        )
        manager = _manager(fetcher)

        with pytest.raises(CredentialExchangeError):
            asyncio.run(manager.get_token())
        assert manager.cache.credential is None

    def test_fetch_receives_auth_mode(self):
        fetcher = _fetcher(_credential("tok", timedelta(hours=1)))
        mode = AuthMode.static_token()
        manager = _manager(fetcher, mode=mode)

        asyncio.run(manager.get_token())
        fetcher.fetch_credential.assert_awaited_once_with(mode)


# ============================================================================
# CONNECTION DETAILS
# ============================================================================

class TestConnectionDetails:

    def test_connection_string_round_trip(self):
        env = {**BASE_ENV, "APP_ENV": "development", "PGUSER": "a@b.com", "DB_TENANT_ID": "t"}
        fetcher = _fetcher(_credential("t#1/2", timedelta(hours=1)))
        manager = _manager(fetcher, env=env, mode=AuthMode.federated(local=True))

        url = asyncio.run(manager.get_connection_string())
        parts = urlsplit(url)

        assert unquote(parts.username) == "a@b.com"
        assert unquote(parts.password) == "t#1/2"
        assert parts.hostname == "instance.database.example.net"
        assert parts.port == 5432
        assert parts.path == "/appdb"
        assert parts.query == "sslmode=require"

    def test_connection_params(self):
        fetcher = _fetcher(_credential("tok", timedelta(hours=1)))
        manager = _manager(fetcher)

        params = asyncio.run(manager.get_connection_params())

        assert params == {
            "host": "instance.database.example.net",
            "port": 5432,
            "dbname": "appdb",
            "user": "sp-client-id",
            "password": "tok",
            "sslmode": "require",
        }

    def test_username_local_prefers_pguser(self):
        env = {**BASE_ENV, "APP_ENV": "development", "PGUSER": "dev@example.com", "DB_CLIENT_ID": "cid"}
        manager = _manager(_fetcher(), env=env, mode=AuthMode.federated(local=True))
        assert manager.username == "dev@example.com"

    def test_username_local_fallback(self):
        env = {**BASE_ENV, "APP_ENV": "development"}
        manager = _manager(_fetcher(), env=env, mode=AuthMode.static_token())
        assert manager.username == "local-dev-user"

    def test_username_production_is_client_id(self):
        env = {**PRODUCTION_ENV, "PGUSER": "dev@example.com"}
        manager = _manager(_fetcher(), env=env)
        assert manager.username == "sp-client-id"


# ============================================================================
# STATUS
# ============================================================================

class TestStatus:

    def test_status_without_credential(self):
        status = _manager(_fetcher()).get_status()

        assert status["token_cached"] is False
        assert status["ttl_seconds"] == 0
        assert status["auth_type"] == "federated_service_principal"

    def test_status_never_contains_token(self):
        manager = _manager(_fetcher())
        manager.cache.set(_credential("very-secret-token", timedelta(hours=1)))

        status = manager.get_status()

        assert status["token_cached"] is True
        assert status["ttl_seconds"] > 3500
        assert "very-secret-token" not in str(status)

    def test_aclose_clears_cache(self):
        fetcher = _fetcher()
        manager = _manager(fetcher)
        manager.cache.set(_credential("tok", timedelta(hours=1)))

        asyncio.run(manager.aclose())

        assert manager.cache.credential is None
        fetcher.aclose.assert_awaited_once()


# ============================================================================
# FACTORY
# ============================================================================

class TestCreateTokenManager:

    def test_disabled_returns_none(self):
        config = ManagedDatabaseConfig.from_env({})
        assert asyncio.run(create_token_manager(config)) is None

    def test_missing_config_raises(self):
        config = ManagedDatabaseConfig.from_env(BASE_ENV)

        with pytest.raises(ConfigurationError) as exc_info:
            asyncio.run(create_token_manager(config))

        assert exc_info.value.missing == ["DB_TENANT_ID", "DB_CLIENT_ID", "SECRET_STORE_NAME"]

    def test_static_token_skips_secret_store(self):
        config = ManagedDatabaseConfig.from_env({
            **BASE_ENV, "APP_ENV": "development", "DB_STATIC_TOKEN": "dapi-1",
        })

        with patch(
            "infrastructure.auth.token_manager.resolve_client_secret", new_callable=AsyncMock
        ) as resolve_secret:
            manager = asyncio.run(create_token_manager(config))

        resolve_secret.assert_not_awaited()
        assert manager.auth_mode.is_static

    def test_production_reads_client_secret(self):
        config = ManagedDatabaseConfig.from_env(PRODUCTION_ENV)

        with patch(
            "infrastructure.auth.token_manager.resolve_client_secret",
            new_callable=AsyncMock,
            return_value="sp-secret",
        ) as resolve_secret:
            manager = asyncio.run(create_token_manager(config))

        resolve_secret.assert_awaited_once_with(config)
        assert manager.auth_mode == AuthMode.federated(local=False)
        assert manager.fetcher._client_secret == "sp-secret"

# ============================================================================
# SCHEMA NAME RESOLVER TESTS
# ============================================================================
# STATUS: Tests - Schema precedence rules
# PURPOSE: Verify every source of the schema name and their ordering
# CREATED: 18 OCT 2026
# ============================================================================
"""
Schema Name Resolver Tests

Covers:
1. Each single source in isolation
2. Precedence when every source is set
3. Local-development detection (APP_ENV + SECRET_STORE_NAME)
4. Default when nothing applies

Run with:
    pytest tests/test_schema_resolver.py -v
"""

import os
from itertools import combinations
from unittest.mock import patch

import pytest

from infrastructure.auth.schema import DEFAULT_SCHEMA, resolve_schema_name


# Highest precedence first: (environment fragment, expected schema)
SOURCES = [
    ({"PGSCHEMA": "explicit"}, "explicit"),
    ({"DB_SCHEMA": "svc_schema"}, "svc_schema"),
    ({"USE_MANAGED_DB": "true", "PGUSER": "dev@example.com"}, "app_dev"),
    ({"APP_ENV": "development", "PGUSER": "dev@example.com"}, "app_dev"),
    ({}, "app"),
]


# ============================================================================
# SINGLE SOURCES
# ============================================================================

class TestSingleSource:
    """Each rule applied with only its own inputs present."""

    def test_pgschema(self):
        assert resolve_schema_name({"PGSCHEMA": "custom"}) == "custom"

    def test_db_schema(self):
        assert resolve_schema_name({"DB_SCHEMA": "svc_schema"}) == "svc_schema"

    def test_managed_db_with_pguser(self):
        env = {"USE_MANAGED_DB": "true", "PGUSER": "jane.doe@example.com"}
        assert resolve_schema_name(env) == "app_jane.doe"

    def test_local_dev_with_pguser(self):
        env = {"APP_ENV": "development", "PGUSER": "dev@example.com"}
        assert resolve_schema_name(env) == "app_dev"

    def test_pguser_without_at_sign(self):
        env = {"USE_MANAGED_DB": "true", "PGUSER": "svc"}
        assert resolve_schema_name(env) == "app_svc"

    def test_default(self):
        assert resolve_schema_name({}) == DEFAULT_SCHEMA == "app"


# ============================================================================
# PRECEDENCE
# ============================================================================

class TestPrecedence:
    """First matching rule wins."""

    def test_all_set_uses_pgschema(self):
        env = {
            "PGSCHEMA": "explicit",
            "DB_SCHEMA": "svc_schema",
            "USE_MANAGED_DB": "true",
            "APP_ENV": "development",
            "PGUSER": "dev@example.com",
        }
        assert resolve_schema_name(env) == "explicit"

    def test_db_schema_beats_pguser(self):
        env = {
            "DB_SCHEMA": "svc_schema",
            "USE_MANAGED_DB": "true",
            "PGUSER": "dev@example.com",
        }
        assert resolve_schema_name(env) == "svc_schema"

    @pytest.mark.parametrize("higher, lower", list(combinations(range(len(SOURCES)), 2)))
    def test_pairwise(self, higher, lower):
        env_high, expected = SOURCES[higher]
        env_low, _ = SOURCES[lower]
        assert resolve_schema_name({**env_low, **env_high}) == expected

    def test_empty_pgschema_is_ignored(self):
        env = {"PGSCHEMA": "", "DB_SCHEMA": "svc_schema"}
        assert resolve_schema_name(env) == "svc_schema"


# ============================================================================
# LOCAL DEVELOPMENT CONTEXT
# ============================================================================

class TestLocalDevelopmentContext:
    """PGUSER only counts outside managed mode in local development."""

    def test_secret_store_disables_local_dev(self):
        env = {
            "APP_ENV": "development",
            "SECRET_STORE_NAME": "prod-vault",
            "PGUSER": "dev@example.com",
        }
        assert resolve_schema_name(env) == "app"

    def test_production_env_ignores_pguser(self):
        env = {"APP_ENV": "production", "PGUSER": "dev@example.com"}
        assert resolve_schema_name(env) == "app"

    @pytest.mark.parametrize("flag", ["false", "0", "", "yes"])
    def test_managed_flag_must_be_true(self, flag):
        env = {"USE_MANAGED_DB": flag, "PGUSER": "dev@example.com"}
        assert resolve_schema_name(env) == "app"

    def test_reads_process_environment_by_default(self):
        with patch.dict(os.environ, {"PGSCHEMA": "from_env"}, clear=True):
            assert resolve_schema_name() == "from_env"

# ============================================================================
# SCHEMA NAME RESOLUTION
# ============================================================================
# STATUS: Infrastructure - Target schema for session search_path
# PURPOSE: Derive the working schema from layered environment overrides
# CREATED: 14 OCT 2026
# ============================================================================
"""
Schema name resolution.

Precedence (first match wins):
1. PGSCHEMA
2. DB_SCHEMA
3. USE_MANAGED_DB=true and PGUSER set       -> app_<local part of PGUSER>
4. local development and PGUSER set         -> app_<local part of PGUSER>
5. "app"

The pool builder and tools/run_with_db_auth.py both call this function, so
migrations and queries always target the same schema.
"""

import logging
from typing import Mapping, Optional

from core.config.settings import env_flag, is_local_dev, resolve_env

logger = logging.getLogger(__name__)

SCHEMA_PREFIX = "app"
DEFAULT_SCHEMA = "app"


def _derive_from_identity(identity: str) -> str:
    return f"{SCHEMA_PREFIX}_{identity.split('@')[0]}"


def resolve_schema_name(env: Optional[Mapping[str, str]] = None) -> str:
    """Resolve the schema name from the environment (defaults to os.environ)."""
    env = resolve_env(env)
    identity = env.get("PGUSER")

    if env.get("PGSCHEMA"):
        schema, source = env["PGSCHEMA"], "PGSCHEMA"
    elif env.get("DB_SCHEMA"):
        schema, source = env["DB_SCHEMA"], "DB_SCHEMA"
    elif env_flag(env.get("USE_MANAGED_DB")) and identity:
        schema, source = _derive_from_identity(identity), "PGUSER (managed db)"
    elif is_local_dev(env) and identity:
        schema, source = _derive_from_identity(identity), "PGUSER (local dev)"
    else:
        schema, source = DEFAULT_SCHEMA, "default"

    logger.debug(f"Resolved schema {schema!r} from {source}")
    return schema


__all__ = ["SCHEMA_PREFIX", "DEFAULT_SCHEMA", "resolve_schema_name"]

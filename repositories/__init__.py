# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Core - Database access layer
# PURPOSE: Connection pool supervision for the managed database
# CREATED: 16 OCT 2026
# ============================================================================
"""
Repositories Module

Uses psycopg3 async with connection pooling. The pool password is a
short-lived token; the supervisor rebuilds the pool when it is rejected.

Usage:
    from repositories import DatabasePool

    async with DatabasePool() as supervisor:
        row = await supervisor.fetch_one("SELECT now() AS ts")
"""

from .database import (
    ConnectionPoolSupervisor,
    DatabasePool,
    create_supervisor,
    is_auth_failure,
)

__all__ = [
    "ConnectionPoolSupervisor",
    "DatabasePool",
    "create_supervisor",
    "is_auth_failure",
]

# ============================================================================
# DATABASE CONNECTION POOL SUPERVISOR
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: Own the live psycopg pool and rebuild it on token expiry
# CREATED: 16 OCT 2026
# ============================================================================
"""
Database Connection Pool Supervisor

Owns the single "current" psycopg_pool.AsyncConnectionPool.

Supports two modes:
1. Managed database (USE_MANAGED_DB=true) - password is a short-lived token
   from TokenManager; pool is rebuilt when the server rejects it
2. Plain (local dev / CI) - DATABASE_URL or POSTGRES_* vars

Lifecycle:
    UNINITIALIZED --get_pool()--> ACTIVE
    ACTIVE --28P01 on a query--> RECOVERING --> ACTIVE (new pool)
                                            --> FAILED (rebuild raised)
    ACTIVE --refresh timer--> ACTIVE (new pool; old pool kept on error)
    any --close()--> CLOSED

In managed mode the pool asks TokenManager for connection parameters each
time it opens a physical connection, so new connections always carry the
current token. The pool is also replaced on a timer ahead of token expiry.

Recovery clears the token cache, builds a new pool, swaps it in, and closes
the old pool in a background task. Only SQLSTATE 28P01 (invalid_password)
triggers recovery; every other error reaches the caller untouched. A
rejected password at connect time happens in the pool's background worker
and the waiting caller only sees PoolTimeout, so connect attempts are
observed through a connection_class and a PoolTimeout on a pool whose
connects were refused counts as an authentication failure.

Usage:
    supervisor = await create_supervisor()

    async def count_users(pool):
        async with pool.connection() as conn:
            cur = await conn.execute("SELECT count(*) FROM users")
            return (await cur.fetchone())[0]

    total = await supervisor.execute_with_retry(count_users)
    await supervisor.close()
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar, Union

import psycopg
from psycopg import AsyncConnection, sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from core.config import PoolSettings, Settings, get_settings
from core.contracts import PoolState
from core.logging import log_context, mask_conninfo
from infrastructure.auth import TokenManager, create_token_manager, resolve_schema_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATE invalid_password
AUTH_FAILURE_SQLSTATE = "28P01"

# Server text for 28P01; libpq connect errors carry no SQLSTATE
AUTH_FAILURE_MESSAGE = "password authentication failed"

ConnectKwargs = Union[Dict[str, Any], Callable[[], Awaitable[Dict[str, Any]]]]
ConnectObserver = Callable[[Optional[BaseException]], None]

PoolFactory = Callable[
    [str, ConnectKwargs, Optional[str], PoolSettings, str, Type[AsyncConnection]],
    Awaitable[AsyncConnectionPool],
]


# ============================================================================
# ERROR CLASSIFICATION
# ============================================================================

def is_auth_failure(exc: BaseException) -> bool:
    """
    True if exc (or an explicit `raise ... from` cause) is SQLSTATE 28P01.

    Only __cause__ is followed. An error raised while handling a 28P01
    (implicit __context__) is a different failure and is not reclassified.
    Connectivity errors, timeouts and query errors return False.
    """
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, psycopg.errors.InvalidPassword):
            return True
        if getattr(current, "sqlstate", None) == AUTH_FAILURE_SQLSTATE:
            return True
        current = current.__cause__
    return False


def is_connect_auth_failure(exc: BaseException) -> bool:
    """
    Classify an error raised while opening a physical connection.

    psycopg reports a refused password at connect time as an
    OperationalError without a SQLSTATE, so the server message is
    checked as well.
    """
    if is_auth_failure(exc):
        return True
    return isinstance(exc, psycopg.OperationalError) and AUTH_FAILURE_MESSAGE in str(exc)


# ============================================================================
# POOL CONSTRUCTION
# ============================================================================

def get_connection_string(env: Optional[Dict[str, str]] = None) -> str:
    """
    Plain-mode connection string.

    Priority:
    1. DATABASE_URL
    2. Individual POSTGRES_* components
    """
    env = os.environ if env is None else env

    if url := env.get("DATABASE_URL"):
        return url

    host = env.get("POSTGRES_HOST", "localhost")
    port = env.get("POSTGRES_PORT", "5432")
    name = env.get("POSTGRES_DB", "postgres")
    user = env.get("POSTGRES_USER", "postgres")
    password = env.get("POSTGRES_PASSWORD", "")
    sslmode = env.get("POSTGRES_SSLMODE", "require")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def make_search_path_hook(schema: str) -> Callable[[AsyncConnection], Awaitable[None]]:
    """
    Pool `configure` callback: runs once per new physical connection,
    before the connection is handed out.
    """
    statement = sql.SQL("SET search_path TO {}").format(sql.Identifier(schema))

    async def configure(conn: AsyncConnection) -> None:
        await conn.execute(statement)
        # Pool requires connections to be returned idle
        await conn.commit()
        logger.debug(f"Connection established with schema: {schema}")

    return configure


def make_connection_class(on_connect: ConnectObserver) -> Type[AsyncConnection]:
    """
    AsyncConnection subclass that reports every connect attempt.

    on_connect receives the exception of a failed attempt, or None after a
    successful one. The exception is re-raised so the pool handles it as
    usual.
    """

    class SupervisedConnection(AsyncConnection):

        @classmethod
        async def connect(cls, conninfo: str = "", **kwargs):
            try:
                conn = await super().connect(conninfo, **kwargs)
            except Exception as e:
                on_connect(e)
                raise
            on_connect(None)
            return conn

    return SupervisedConnection


async def open_pool(
    conninfo: str,
    kwargs: ConnectKwargs,
    schema: Optional[str],
    settings: PoolSettings,
    name: str,
    connection_class: Type[AsyncConnection] = AsyncConnection,
) -> AsyncConnectionPool:
    """
    Create and open an AsyncConnectionPool, waiting for min_size connections.

    kwargs may be an async callable returning connection parameters; the
    pool awaits it for each new physical connection.
    """
    if callable(kwargs):
        params_source = kwargs

        async def pool_kwargs() -> Dict[str, Any]:
            params = await params_source()
            return {"row_factory": dict_row, **params}
    else:
        pool_kwargs = {"row_factory": dict_row, **kwargs}

    pool = AsyncConnectionPool(
        conninfo=conninfo,
        kwargs=pool_kwargs,
        connection_class=connection_class,
        min_size=settings.min_size,
        max_size=settings.max_size,
        timeout=settings.timeout_seconds,
        max_idle=settings.max_idle_seconds,
        max_lifetime=settings.max_lifetime_seconds,
        configure=make_search_path_hook(schema) if schema else None,
        name=name,
        open=False,
    )
    try:
        await pool.open(wait=True, timeout=settings.timeout_seconds)
    except BaseException:
        await pool.close()
        raise
    return pool


# ============================================================================
# SUPERVISOR
# ============================================================================

class ConnectionPoolSupervisor:
    """
    Owns the current pool and recovers from token-expiry auth failures.

    Operations issued after a new pool becomes current never see the old
    one; work already running on the old pool finishes (or fails) there.
    """

    def __init__(
        self,
        token_manager: Optional[TokenManager] = None,
        pool_settings: Optional[PoolSettings] = None,
        schema_name: Optional[str] = None,
        conninfo: Optional[str] = None,
        pool_factory: PoolFactory = open_pool,
    ):
        """
        Args:
            token_manager: Source of the password (None = plain mode)
            pool_settings: Pool limits and timeouts
            schema_name: search_path set on every new connection (None = leave default)
            conninfo: Plain-mode connection string (defaults to env)
            pool_factory: Builds and opens a pool (injected in tests)
        """
        self.token_manager = token_manager
        self.pool_settings = pool_settings or get_settings().pool
        self.schema_name = schema_name
        self._conninfo = conninfo
        self._pool_factory = pool_factory

        self._pool: Optional[AsyncConnectionPool] = None
        self._generation = 0
        self._state = PoolState.UNINITIALIZED
        self._lock = asyncio.Lock()
        self._retiring: Dict[int, asyncio.Task] = {}
        # generation -> last refused connect attempt on that pool
        self._connect_rejections: Dict[int, BaseException] = {}
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_count = 0

    @property
    def state(self) -> PoolState:
        return self._state

    @property
    def generation(self) -> int:
        """Number of pools built so far; identifies the current pool."""
        return self._generation

    @property
    def is_managed(self) -> bool:
        return self.token_manager is not None

    @property
    def current_pool(self) -> Optional[AsyncConnectionPool]:
        return self._pool

    # ------------------------------------------------------------------
    # BUILD
    # ------------------------------------------------------------------

    async def _build_pool(self):
        generation = self._generation + 1

        if self.token_manager is not None:
            conninfo = ""
            # Fetch up front so credential errors surface before the pool opens
            params = await self.token_manager.get_connection_params()
            kwargs: ConnectKwargs = self.token_manager.get_connection_params
            target = f"{params['user']}@{params['host']}:{params['port']}/{params['dbname']}"
        else:
            conninfo = self._conninfo or get_connection_string()
            kwargs = {}
            target = mask_conninfo(conninfo)

        with log_context(operation="pool_build", pool_generation=generation):
            logger.info(
                f"Initializing connection pool: {target} "
                f"(schema={self.schema_name or 'default'}, "
                f"min={self.pool_settings.min_size}, max={self.pool_settings.max_size})"
            )
            pool = await self._pool_factory(
                conninfo,
                kwargs,
                self.schema_name,
                self.pool_settings,
                f"pool-{generation}",
                make_connection_class(self._connect_observer(generation)),
            )
            logger.info("Connection pool opened")

        return pool, generation

    def _connect_observer(self, generation: int) -> ConnectObserver:
        def observe(error: Optional[BaseException]) -> None:
            if generation < self._generation:
                return
            if error is None:
                self._connect_rejections.pop(generation, None)
            elif is_connect_auth_failure(error):
                self._connect_rejections[generation] = error

        return observe

    def _swap(self, new_pool: AsyncConnectionPool, generation: int) -> None:
        """Make new_pool current and retire the previous one. Caller holds the lock."""
        old_pool, old_generation = self._pool, self._generation
        self._pool, self._generation = new_pool, generation
        self._state = PoolState.ACTIVE
        self._connect_rejections.pop(old_generation, None)
        if old_pool is not None:
            self._retire(old_pool)

    async def get_pool(self) -> AsyncConnectionPool:
        """
        Get the current pool, building it on first use.

        Raises:
            RuntimeError: If the supervisor has been closed
            Any credential or pool construction error, unchanged
        """
        pool = self._pool
        if pool is not None:
            return pool

        async with self._lock:
            if self._state == PoolState.CLOSED:
                raise RuntimeError("Connection pool supervisor is closed")
            if self._pool is None:
                pool, generation = await self._build_pool()
                self._swap(pool, generation)
                self._start_refresh()
            return self._pool

    # ------------------------------------------------------------------
    # SCHEDULED REFRESH
    # ------------------------------------------------------------------

    def _start_refresh(self) -> None:
        interval = self.pool_settings.refresh_interval_seconds
        if self.token_manager is None or interval <= 0 or self._refresh_task is not None:
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(interval))

    async def _refresh_loop(self, interval: float) -> None:
        logger.info(f"[Pool Refresh] Starting (interval: {interval}s)")
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"[Pool Refresh] Error: {type(e).__name__}: {e}")

    async def refresh(self) -> Optional[AsyncConnectionPool]:
        """
        Replace the pool ahead of token expiry.

        The token cache is kept: TokenManager already renews a token that is
        within its refresh buffer. On error the current pool and state are
        left as they were and the error propagates.

        Returns:
            The new pool, or None if there is nothing to refresh
        """
        async with self._lock:
            if self._state == PoolState.CLOSED or self._pool is None:
                return None

            with log_context(operation="pool_refresh"):
                logger.info(f"Refreshing connection pool (generation {self._generation})")
                new_pool, generation = await self._build_pool()
                self._swap(new_pool, generation)
                self._refresh_count += 1
                logger.info(f"Pool refreshed (generation {generation})")
            return new_pool

    # ------------------------------------------------------------------
    # RECOVERY
    # ------------------------------------------------------------------

    async def recover(self, failed_generation: Optional[int] = None) -> AsyncConnectionPool:
        """
        Rebuild the pool after an authentication failure.

        Args:
            failed_generation: Generation of the pool that raised 28P01.
                If a newer pool already exists (concurrent recovery won the
                race) it is returned without another rebuild.

        Raises:
            Credential or pool construction errors (state becomes FAILED)
        """
        async with self._lock:
            if self._state == PoolState.CLOSED:
                raise RuntimeError("Connection pool supervisor is closed")

            if (
                failed_generation is not None
                and self._pool is not None
                and failed_generation != self._generation
            ):
                logger.info(
                    f"Pool generation {failed_generation} already replaced by "
                    f"generation {self._generation}, skipping rebuild"
                )
                return self._pool

            self._state = PoolState.RECOVERING
            logger.info("Authentication error detected, recreating pool...")

            if self.token_manager is not None:
                self.token_manager.clear_cache()

            try:
                new_pool, generation = await self._build_pool()
            except Exception as e:
                self._state = PoolState.FAILED
                logger.error(f"Failed to recreate pool: {type(e).__name__}: {e}")
                raise

            self._swap(new_pool, generation)
            logger.info(f"Pool recreated successfully (generation {generation})")
            return new_pool

    def _retire(self, pool: AsyncConnectionPool) -> None:
        """Close a superseded pool in the background. Repeat calls are no-ops."""
        key = id(pool)
        if key in self._retiring:
            return

        task = asyncio.create_task(self._close_retired(pool))
        self._retiring[key] = task
        task.add_done_callback(lambda _t: self._retiring.pop(key, None))

    async def _close_retired(self, pool: AsyncConnectionPool) -> None:
        try:
            await pool.close()
            logger.info(f"Retired pool closed: {getattr(pool, 'name', 'pool')}")
        except Exception as e:
            logger.warning(f"Error closing old pool: {type(e).__name__}: {e}")

    # ------------------------------------------------------------------
    # OPERATIONS
    # ------------------------------------------------------------------

    async def execute_with_retry(
        self,
        operation: Callable[[AsyncConnectionPool], Awaitable[T]],
    ) -> T:
        """
        Run operation(pool) once; on 28P01 recover and run it once more.

        A PoolTimeout counts as 28P01 when the pool's own connect attempts
        were refused with it. Any other error, or a failure of the retry,
        propagates unchanged.
        """
        pool = await self.get_pool()
        generation = self._generation

        try:
            return await operation(pool)
        except Exception as e:
            if not self._rejected(e, generation):
                raise
            logger.warning(
                f"Authentication rejected (SQLSTATE {AUTH_FAILURE_SQLSTATE}) "
                f"on pool generation {generation}: {type(e).__name__}"
            )

        new_pool = await self.recover(failed_generation=generation)
        return await operation(new_pool)

    def _rejected(self, exc: BaseException, generation: int) -> bool:
        if is_auth_failure(exc):
            return True
        return isinstance(exc, PoolTimeout) and generation in self._connect_rejections

    @asynccontextmanager
    async def connection(self):
        """
        Borrow a connection from the current pool (no retry).

        Usage:
            async with supervisor.connection() as conn:
                await conn.execute(...)
        """
        pool = await self.get_pool()
        async with pool.connection() as conn:
            yield conn

    async def execute(self, query, params: Optional[tuple] = None) -> None:
        """Execute a statement without returning results."""
        async def _run(pool: AsyncConnectionPool) -> None:
            async with pool.connection() as conn:
                await conn.execute(query, params)

        await self.execute_with_retry(_run)

    async def fetch_one(self, query, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """Execute query and fetch one row."""
        async def _run(pool: AsyncConnectionPool):
            async with pool.connection() as conn:
                cur = await conn.execute(query, params)
                return await cur.fetchone()

        return await self.execute_with_retry(_run)

    async def fetch_all(self, query, params: Optional[tuple] = None) -> list:
        """Execute query and fetch all rows."""
        async def _run(pool: AsyncConnectionPool):
            async with pool.connection() as conn:
                cur = await conn.execute(query, params)
                return await cur.fetchall()

        return await self.execute_with_retry(_run)

    # ------------------------------------------------------------------
    # STATUS / SHUTDOWN
    # ------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Supervisor state plus psycopg_pool stats of the current pool."""
        stats: Dict[str, Any] = {
            "state": self._state.value,
            "generation": self._generation,
            "managed": self.is_managed,
            "schema": self.schema_name,
            "retiring_pools": len(self._retiring),
            "refresh_running": self._refresh_task is not None and not self._refresh_task.done(),
            "refresh_count": self._refresh_count,
        }
        if self._pool is not None:
            stats.update(self._pool.get_stats())
        return stats

    async def close(self) -> None:
        """
        Stop the refresh timer, close the current pool, wait for retiring
        pools, clear the credential.

        Safe to call more than once.
        """
        refresh_task, self._refresh_task = self._refresh_task, None
        if refresh_task is not None and not refresh_task.done():
            refresh_task.cancel()
            await asyncio.gather(refresh_task, return_exceptions=True)

        async with self._lock:
            if self._state == PoolState.CLOSED:
                return
            pool, self._pool = self._pool, None
            self._state = PoolState.CLOSED

        try:
            if self._retiring:
                await asyncio.gather(*list(self._retiring.values()), return_exceptions=True)
            if pool is not None:
                await pool.close()
                logger.info("Connection pool closed")
        finally:
            if self.token_manager is not None:
                await self.token_manager.aclose()


# ============================================================================
# COMPOSITION
# ============================================================================

async def create_supervisor(settings: Optional[Settings] = None) -> ConnectionPoolSupervisor:
    """
    Build the process's supervisor from configuration.

    Managed mode gets a TokenManager and the resolved schema as
    search_path; plain mode connects with DATABASE_URL / POSTGRES_* as-is.

    Raises:
        ConfigurationError / SecretStoreError: From create_token_manager()
    """
    settings = settings or get_settings()
    token_manager = await create_token_manager(settings.database)

    if token_manager is None:
        logger.info("Managed database disabled, using plain connection string")
        return ConnectionPoolSupervisor(pool_settings=settings.pool)

    schema = resolve_schema_name()
    logger.info(f"Target schema: {schema}")
    return ConnectionPoolSupervisor(
        token_manager=token_manager,
        pool_settings=settings.pool,
        schema_name=schema,
    )


class DatabasePool:
    """
    Scoped acquisition for the pool lifecycle.

    Usage:
        async with DatabasePool() as supervisor:
            row = await supervisor.fetch_one("SELECT 1 AS ok")
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings
        self._supervisor: Optional[ConnectionPoolSupervisor] = None

    async def __aenter__(self) -> ConnectionPoolSupervisor:
        self._supervisor = await create_supervisor(self.settings)
        try:
            await self._supervisor.get_pool()
        except BaseException:
            await self._supervisor.close()
            raise
        return self._supervisor

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._supervisor is not None:
            await self._supervisor.close()


__all__ = [
    "AUTH_FAILURE_SQLSTATE",
    "AUTH_FAILURE_MESSAGE",
    "is_auth_failure",
    "is_connect_auth_failure",
    "get_connection_string",
    "make_search_path_hook",
    "make_connection_class",
    "open_pool",
    "ConnectionPoolSupervisor",
    "create_supervisor",
    "DatabasePool",
]

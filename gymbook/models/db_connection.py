"""PostgreSQL connection pool management."""

import asyncio
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple, TypeVar

import asyncpg
from loguru import logger

from gymbook.core.config.settings import DatabaseSettings
from gymbook.core.exceptions import (
    DatabaseError,
    DatabaseNotConnectedError,
    IdlePoolError,
    PoolExhaustedError,
    TransactionFailure,
)

T = TypeVar("T")

WATCHDOG_SECONDS = 5.0
STATEMENT_LOG_LENGTH = 100


@dataclass
class QueryResult:
    """Rows returned by a statement plus the affected row count from its command tag."""

    rows: List[Any] = field(default_factory=list)
    row_count: int = 0
    command: str = ""

    def first(self) -> Optional[Any]:
        return self.rows[0] if self.rows else None


@dataclass(frozen=True)
class HealthStatus:
    """Outcome of a database round trip."""

    reachable: bool
    server_time: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        data: dict = {"reachable": self.reachable}
        if self.reachable:
            data["server_time"] = self.server_time.isoformat() if self.server_time else None
        else:
            data["error"] = self.error_message
        return data


def parse_command_tag(status: Optional[str], rows: List[Any]) -> Tuple[str, int]:
    """
    Split a PostgreSQL command tag such as ``INSERT 0 1`` into command and row count.

    Tags without a count (``BEGIN``, ``CREATE TABLE``) fall back to the number of
    returned rows.
    """
    parts = (status or "").split()
    command = parts[0] if parts else ""
    if len(parts) > 1 and parts[-1].isdigit():
        return command, int(parts[-1])
    return command, len(rows)


class MonitoredConnection(asyncpg.Connection):
    """asyncpg connection that records its lease state and deliberate closes."""

    leased = False
    closing_deliberately = False

    def mark_leased(self) -> None:
        self.leased = True

    def mark_idle(self) -> None:
        self.leased = False

    async def close(self, *, timeout: Optional[float] = None) -> None:
        self.closing_deliberately = True
        await super().close(timeout=timeout)

    def terminate(self) -> None:
        self.closing_deliberately = True
        super().terminate()


def exit_on_idle_error(error: IdlePoolError) -> None:
    """Default fatal handler: the process is restarted by its supervisor."""
    logger.critical(f"{error.message}. Terminating process")
    os._exit(-1)


class TransactionalClient:
    """
    One pooled connection checked out for a multi-statement unit of work.

    Remembers the last statement it ran and arms a watchdog that warns when the
    client is held past the threshold. The watchdog never reclaims the connection.
    """

    def __init__(
        self,
        pool: "DatabasePool",
        connection: Any,
        watchdog_seconds: float = WATCHDOG_SECONDS,
    ):
        self._pool = pool
        self.connection = connection
        self.last_query: Optional[Tuple[str, Tuple[Any, ...]]] = None
        self._watchdog_seconds = watchdog_seconds
        self._released = False
        self._watchdog = asyncio.get_running_loop().call_later(
            watchdog_seconds, self._warn_checked_out
        )

    @property
    def released(self) -> bool:
        return self._released

    def _warn_checked_out(self) -> None:
        logger.warning(
            f"A client has been checked out for more than {self._watchdog_seconds:g} seconds!"
        )
        if self.last_query is not None:
            statement, params = self.last_query
            logger.warning(
                f"The last executed query on this client was: {statement[:STATEMENT_LOG_LENGTH]}"
                f" (params: {len(params)})"
            )

    def _ensure_leased(self) -> None:
        if self._released:
            raise DatabaseError("Transactional client has already been released")

    async def query(self, statement: str, *params: Any) -> QueryResult:
        """Run a parameterized statement on the leased connection."""
        self._ensure_leased()
        self.last_query = (statement, params)
        return await self._pool._run(self.connection, statement, params)

    async def execute(self, statement: str, *params: Any) -> str:
        """Run a statement and return its command tag."""
        self._ensure_leased()
        self.last_query = (statement, params)
        return await self.connection.execute(statement, *params)

    async def release(self) -> None:
        """Cancel the watchdog and hand the connection back. Later calls are no-ops."""
        if self._released:
            return
        self._released = True
        self._watchdog.cancel()
        await self._pool._release(self.connection)


class DatabasePool:
    """Owns the process's PostgreSQL connection pool."""

    def __init__(
        self,
        settings: DatabaseSettings,
        is_production: bool = False,
        fatal_handler: Optional[Callable[[IdlePoolError], None]] = None,
    ):
        """
        Initialize the pool manager. No connection is made until :meth:`open`.

        Args:
            settings: Database section of the application settings
            is_production: Suppresses per-statement diagnostics when True
            fatal_handler: Called with IdlePoolError when an idle connection dies
        """
        self.settings = settings
        self.is_production = is_production
        self.fatal_handler = fatal_handler or exit_on_idle_error
        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def open(self) -> None:
        """Create the connection pool. Opening an open pool is a no-op."""
        async with self._pool_lock:
            if self._pool is not None:
                return

            db = self.settings
            self._closing = False
            self._pool = await asyncpg.create_pool(
                host=db.host,
                port=db.port,
                database=db.database,
                user=db.user,
                password=db.password.get_secret_value() or None,
                min_size=0,
                max_size=db.pool_max,
                timeout=db.connect_timeout,
                max_inactive_connection_lifetime=db.idle_timeout,
                ssl="require" if db.ssl else False,
                connection_class=MonitoredConnection,
                init=self._init_connection,
            )
            logger.info(
                f"PostgreSQL pool created for {db.describe()} "
                f"(max {db.pool_max} connections, ssl={db.ssl})"
            )

    async def _init_connection(self, connection: asyncpg.Connection) -> None:
        connection.add_termination_listener(self._on_connection_terminated)

    def _on_connection_terminated(self, connection: Any) -> None:
        if self._closing or getattr(connection, "closing_deliberately", False):
            return
        if getattr(connection, "leased", False):
            # The in-flight caller receives the driver error
            return
        self.fatal_handler(IdlePoolError())

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise DatabaseNotConnectedError()
        return self._pool

    async def _acquire(self) -> Any:
        pool = self._require_pool()
        try:
            connection = await pool.acquire(timeout=self.settings.connect_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Database connection pool exhausted "
                f"(timeout: {self.settings.connect_timeout}s, pool_size: {self.settings.pool_max})"
            )
            raise PoolExhaustedError(
                timeout=self.settings.connect_timeout, pool_size=self.settings.pool_max
            )
        connection.mark_leased()
        return connection

    async def _release(self, connection: Any) -> None:
        connection.mark_idle()
        await self._require_pool().release(connection)

    async def _run(self, connection: Any, statement: str, params: Tuple[Any, ...]) -> QueryResult:
        start = time.perf_counter()
        prepared = await connection.prepare(statement)
        rows = await prepared.fetch(*params)
        command, row_count = parse_command_tag(prepared.get_statusmsg(), rows)
        duration_ms = (time.perf_counter() - start) * 1000

        if not self.is_production:
            logger.debug(
                "Executed query",
                text=statement[:STATEMENT_LOG_LENGTH],
                duration=round(duration_ms, 2),
                rows=row_count,
            )
        return QueryResult(rows=list(rows), row_count=row_count, command=command)

    async def query(self, statement: str, *params: Any) -> QueryResult:
        """
        Execute a parameterized statement on any pooled connection.

        Args:
            statement: SQL with ``$1``-style placeholders
            *params: Positional parameters

        Returns:
            QueryResult with rows and affected row count

        Raises:
            DatabaseNotConnectedError: If the pool is not open
            PoolExhaustedError: If no connection became free within the connect timeout
            asyncpg.PostgresError: Driver errors propagate unchanged
        """
        connection = await self._acquire()
        try:
            return await self._run(connection, statement, params)
        finally:
            await self._release(connection)

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[Any]:
        """
        Lease a raw pooled connection for the duration of the block.

        Raises:
            PoolExhaustedError: If connection cannot be acquired within the connect timeout
        """
        connection = await self._acquire()
        try:
            yield connection
        finally:
            await self._release(connection)

    async def lease_transactional_client(self) -> TransactionalClient:
        """
        Check out a dedicated connection for multi-statement work.

        The caller must call ``release()`` exactly once; prefer :meth:`run_transaction`.
        """
        connection = await self._acquire()
        return TransactionalClient(self, connection)

    async def _rollback(self, client: TransactionalClient) -> None:
        try:
            await client.execute("ROLLBACK")
        except Exception as e:
            logger.error(f"Rollback failed: {e}")

    async def run_transaction(self, work: Callable[[TransactionalClient], Awaitable[T]]) -> T:
        """
        Run ``work`` inside BEGIN/COMMIT on one dedicated connection.

        Args:
            work: Coroutine function receiving the transactional client

        Returns:
            Whatever ``work`` returns

        Raises:
            TransactionFailure: If BEGIN or COMMIT fails
            Exception: Anything raised by ``work`` is re-raised after rollback
        """
        client = await self.lease_transactional_client()
        try:
            try:
                await client.execute("BEGIN")
            except Exception as e:
                raise TransactionFailure(f"Could not start transaction: {e}") from e

            try:
                result = await work(client)
            except BaseException:
                # Cancellation rolls back too
                await self._rollback(client)
                raise

            try:
                await client.execute("COMMIT")
            except Exception as e:
                await self._rollback(client)
                raise TransactionFailure(f"Transaction commit failed: {e}") from e
            return result
        finally:
            await client.release()

    async def check_health(self) -> HealthStatus:
        """
        Round-trip ``SELECT NOW()``. Never raises.

        Returns:
            HealthStatus with the server time, or the error message when unreachable
        """
        if self._pool is None:
            return HealthStatus(reachable=False, error_message=DatabaseNotConnectedError().message)
        try:
            result = await self.query("SELECT NOW() AS now")
            row = result.first()
            return HealthStatus(reachable=True, server_time=row["now"] if row else None)
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return HealthStatus(reachable=False, error_message=str(e) or e.__class__.__name__)

    def get_pool_stats(self) -> dict:
        """
        Get current connection pool statistics.

        Returns:
            Dictionary with size, idle, in_use and max
        """
        if self._pool is None:
            return {"size": 0, "idle": 0, "in_use": 0, "max": self.settings.pool_max}

        size = self._pool.get_size()
        idle = self._pool.get_idle_size()
        return {
            "size": size,
            "idle": idle,
            "in_use": size - idle,
            "max": self._pool.get_max_size(),
        }

    async def shutdown(self) -> None:
        """Close every pooled connection. Safe to call more than once."""
        async with self._pool_lock:
            if self._pool is None:
                return
            logger.info("Closing PostgreSQL connection pool...")
            self._closing = True
            pool, self._pool = self._pool, None
            await pool.close()
            logger.info("PostgreSQL connection pool closed")

    async def __aenter__(self) -> "DatabasePool":
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

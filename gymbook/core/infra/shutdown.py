"""
Process lifecycle: database check, HTTP serving, and graceful shutdown.

Handles signals, uncaught exceptions and the forced-exit timer.
"""

import asyncio
import contextlib
import os
import signal
import threading
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional

import uvicorn
from loguru import logger

from gymbook.core.config.settings import Settings
from gymbook.core.exceptions import DatabaseUnreachableError
from gymbook.models.db_connection import DatabasePool
from gymbook.repositories import TokenBlacklistRepository

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShellState(str, Enum):
    STARTING = "starting"
    CHECKING_DB = "checking_db"
    LISTENING = "listening"
    FAILED = "failed"
    DRAINING = "draining"
    EXITED = "exited"


class ManagedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the process shell."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


def build_server(app: Any, host: str, port: int) -> uvicorn.Server:
    config = uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="on")
    return ManagedServer(config)


class ProcessShell:
    """
    Runs one API process from database check to exit.

    States move ``STARTING -> CHECKING_DB -> LISTENING | FAILED`` and then
    ``LISTENING -> DRAINING -> EXITED``.
    """

    def __init__(
        self,
        settings: Settings,
        app_factory: Callable[[Settings, DatabasePool], Any],
        db: Optional[DatabasePool] = None,
        server_factory: Callable[[Any, str, int], Any] = build_server,
        exit_func: Callable[[int], None] = os._exit,
    ):
        """
        Initialize process shell.

        Args:
            settings: Loaded application settings
            app_factory: Builds the ASGI app around the shared pool
            db: Connection pool (created from settings when omitted)
            server_factory: Builds the HTTP server for an app, host and port
            exit_func: Called with the exit code when the drain times out
        """
        self.settings = settings
        self.app_factory = app_factory
        self.db = db or DatabasePool(settings.database, is_production=settings.is_production())
        self.server_factory = server_factory
        self.exit_func = exit_func
        self.state = ShellState.STARTING
        self.server: Optional[Any] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._force_timer: Optional[asyncio.TimerHandle] = None
        self._stop_requested = False
        self._previous_thread_hook: Optional[Callable[[Any], None]] = None

    async def run(self) -> int:
        """
        Check the database, serve until asked to stop, then clean up.

        Returns:
            Process exit code: 0 on a clean exit, 1 on failure
        """
        self._loop = asyncio.get_running_loop()
        self._install_handlers(self._loop)
        try:
            return await self._run()
        finally:
            self._remove_handlers(self._loop)
            if self._force_timer is not None:
                self._force_timer.cancel()

    async def _connect_database(self) -> None:
        """
        Open the pool and round-trip the server.

        Raises:
            DatabaseUnreachableError: If the pool cannot open or the health query fails
        """
        try:
            await self.db.open()
        except Exception as e:
            raise DatabaseUnreachableError(str(e) or e.__class__.__name__) from e

        status = await self.db.check_health()
        if not status.reachable:
            await self.db.shutdown()
            raise DatabaseUnreachableError(status.error_message or "Database is unreachable")
        logger.info(f"Database connected successfully at: {status.server_time}")

    async def _purge_revocations(self) -> None:
        try:
            await TokenBlacklistRepository(self.db).cleanup_expired()
        except Exception as e:
            logger.warning(f"Could not purge expired revoked tokens: {e}")

    async def _run(self) -> int:
        self.state = ShellState.CHECKING_DB
        logger.info("Checking database connection...")
        try:
            await self._connect_database()
        except DatabaseUnreachableError as e:
            logger.error(f"Failed to connect to database: {e.message}")
            self.state = ShellState.FAILED
            return 1
        await self._purge_revocations()

        if self._stop_requested:
            logger.info("Shutdown requested before the server started")
            await self.db.shutdown()
            self.state = ShellState.EXITED
            return 0

        host, port = self.settings.server.host, self.settings.server.port
        self.server = self.server_factory(self.app_factory(self.settings, self.db), host, port)
        self.state = ShellState.LISTENING
        logger.info(
            f"GymBook API listening on {host}:{port} "
            f"(environment: {self.settings.env}, base: /api/v1)"
        )

        exit_code = 0
        try:
            await self.server.serve()
        except SystemExit as e:
            # uvicorn exits when it cannot bind
            logger.error(f"HTTP server stopped unexpectedly (code {e.code})")
            exit_code = 1

        self.state = ShellState.DRAINING
        logger.info("HTTP server closed")
        try:
            await self.db.shutdown()
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")
            exit_code = 1
        else:
            logger.info("Cleanup completed. Exiting...")
        self.state = ShellState.EXITED
        return exit_code

    def request_shutdown(self, signal_name: str) -> None:
        """
        Begin draining: stop accepting connections and arm the forced-exit timer.

        Repeated requests while draining are ignored.
        """
        if self.state in (ShellState.DRAINING, ShellState.EXITED) or self._stop_requested:
            logger.debug(f"{signal_name} ignored, shutdown already in progress")
            return

        logger.info(f"{signal_name} received. Starting graceful shutdown...")
        self._stop_requested = True
        if self.server is None:
            return

        self.state = ShellState.DRAINING
        self.server.should_exit = True
        loop = self._loop or asyncio.get_running_loop()
        self._force_timer = loop.call_later(
            self.settings.server.shutdown_timeout, self._force_exit
        )

    def _force_exit(self) -> None:
        logger.error("Forced shutdown due to timeout")
        self.exit_func(1)

    def handle_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]
    ) -> None:
        """
        Event-loop exception handler.

        Unretrieved task/future exceptions are logged only. An exception
        escaping a loop callback starts the drain.
        """
        exception = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        if "future" in context or "task" in context:
            logger.error(f"Unhandled rejection: {message} ({exception!r})")
            return

        logger.opt(exception=exception).error(f"Uncaught Exception: {message}")
        self.request_shutdown("UNCAUGHT_EXCEPTION")

    def _thread_excepthook(self, args: Any) -> None:
        thread_name = args.thread.name if args.thread else "unknown"
        logger.opt(exception=(args.exc_type, args.exc_value, args.exc_traceback)).error(
            f"Uncaught Exception in thread {thread_name}"
        )
        self._schedule_shutdown("UNCAUGHT_EXCEPTION")

    def _schedule_shutdown(self, reason: str) -> None:
        if self._loop is not None and self._loop.is_running():
            self._loop.call_soon_threadsafe(self.request_shutdown, reason)

    def _install_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError):
                # Not available on this platform or outside the main thread
                logger.debug(f"Cannot install handler for {sig.name}")

        loop.set_exception_handler(self.handle_loop_exception)
        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._thread_excepthook

    def _remove_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass

        loop.set_exception_handler(None)
        if self._previous_thread_hook is not None:
            threading.excepthook = self._previous_thread_hook
            self._previous_thread_hook = None

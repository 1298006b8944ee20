"""Tests for the process shell lifecycle."""

import asyncio
import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

import main
from gymbook.core.exceptions import DatabaseUnreachableError
from gymbook.core.infra import ProcessShell, ShellState
from gymbook.models.db_connection import HealthStatus, QueryResult


class FakeServer:
    """Stands in for uvicorn.Server; serve() runs the given hook then returns."""

    def __init__(self, on_serve=None, error=None):
        self.should_exit = False
        self.on_serve = on_serve
        self.error = error
        self.served = False

    async def serve(self):
        self.served = True
        if self.on_serve is not None:
            self.on_serve()
        if self.error is not None:
            raise self.error


@pytest.fixture
def app_factory():
    return MagicMock(return_value="asgi-app")


def make_shell(settings, db, app_factory, server, exit_func=None):
    return ProcessShell(
        settings,
        app_factory=app_factory,
        db=db,
        server_factory=MagicMock(return_value=server),
        exit_func=exit_func or MagicMock(),
    )


class TestStartup:
    """Tests for the database check before serving."""

    @pytest.mark.asyncio
    async def test_unreachable_database_exits_with_failure(self, settings, fake_db, app_factory):
        fake_db.check_health.return_value = HealthStatus(
            reachable=False, error_message="connection refused"
        )
        server = FakeServer()
        shell = make_shell(settings, fake_db, app_factory, server)

        assert await shell.run() == 1
        assert shell.state == ShellState.FAILED
        assert server.served is False
        app_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_failure(self, settings, fake_db, app_factory):
        fake_db.open.side_effect = OSError("no route to host")
        shell = make_shell(settings, fake_db, app_factory, FakeServer())

        assert await shell.run() == 1
        assert shell.state == ShellState.FAILED

    @pytest.mark.asyncio
    async def test_unreachable_raises_typed_error(self, settings, fake_db, app_factory):
        fake_db.check_health.return_value = HealthStatus(
            reachable=False, error_message="connection refused"
        )
        shell = make_shell(settings, fake_db, app_factory, FakeServer())

        with pytest.raises(DatabaseUnreachableError, match="connection refused"):
            await shell._connect_database()
        fake_db.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_app_built_around_shared_pool(self, settings, fake_db, app_factory):
        server = FakeServer()
        shell = make_shell(settings, fake_db, app_factory, server)

        assert await shell.run() == 0
        app_factory.assert_called_once_with(settings, fake_db)
        shell.server_factory.assert_called_once_with(
            "asgi-app", settings.server.host, settings.server.port
        )
        assert server.served is True


class TestRevocationPurge:
    @pytest.mark.asyncio
    async def test_expired_revocations_purged_at_startup(self, settings, fake_db, app_factory):
        fake_db.query.return_value = QueryResult(row_count=4, command="DELETE")
        shell = make_shell(settings, fake_db, app_factory, FakeServer())

        assert await shell.run() == 0
        statements = [c.args[0] for c in fake_db.query.call_args_list]
        assert "DELETE FROM token_blacklist WHERE expires_at < NOW()" in statements

    @pytest.mark.asyncio
    async def test_purge_failure_does_not_block_startup(self, settings, fake_db, app_factory):
        fake_db.query.side_effect = RuntimeError("relation does not exist")
        server = FakeServer()
        shell = make_shell(settings, fake_db, app_factory, server)

        assert await shell.run() == 0
        assert server.served is True


class TestShutdown:
    """Tests for draining and cleanup."""

    @pytest.mark.asyncio
    async def test_clean_exit_closes_pool(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer())

        assert await shell.run() == 0
        assert shell.state == ShellState.EXITED
        fake_db.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cleanup_failure(self, settings, fake_db, app_factory):
        fake_db.shutdown.side_effect = RuntimeError("close failed")
        shell = make_shell(settings, fake_db, app_factory, FakeServer())

        assert await shell.run() == 1
        assert shell.state == ShellState.EXITED

    @pytest.mark.asyncio
    async def test_bind_failure(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer(error=SystemExit(1)))

        assert await shell.run() == 1
        fake_db.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_signal_drains_server(self, settings, fake_db, app_factory):
        shell = None

        def on_serve():
            shell.request_shutdown("SIGTERM")

        server = FakeServer(on_serve=on_serve)
        shell = make_shell(settings, fake_db, app_factory, server)

        assert await shell.run() == 0
        assert server.should_exit is True
        assert shell._force_timer is not None
        assert shell._force_timer.cancelled()

    @pytest.mark.asyncio
    async def test_second_signal_ignored(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer())
        shell._loop = asyncio.get_running_loop()
        shell.server = FakeServer()

        shell.request_shutdown("SIGTERM")
        first_timer = shell._force_timer
        shell.request_shutdown("SIGINT")

        assert shell.state == ShellState.DRAINING
        assert shell._force_timer is first_timer
        first_timer.cancel()

    @pytest.mark.asyncio
    async def test_stop_before_listening(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer())
        shell.request_shutdown("SIGINT")

        assert await shell.run() == 0
        app_factory.assert_not_called()
        fake_db.shutdown.assert_awaited_once()

    def test_force_exit(self, settings, fake_db, app_factory):
        exit_func = MagicMock()
        shell = make_shell(settings, fake_db, app_factory, FakeServer(), exit_func=exit_func)

        shell._force_exit()
        exit_func.assert_called_once_with(1)


class TestLoopExceptions:
    @pytest.mark.asyncio
    async def test_unhandled_rejection_only_logged(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer())
        shell.request_shutdown = MagicMock()

        shell.handle_loop_exception(
            asyncio.get_running_loop(),
            {"message": "Task exception was never retrieved", "future": object(),
             "exception": ValueError("x")},
        )
        shell.request_shutdown.assert_not_called()

    @pytest.mark.asyncio
    async def test_callback_exception_starts_drain(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer())
        shell.request_shutdown = MagicMock()

        shell.handle_loop_exception(
            asyncio.get_running_loop(),
            {"message": "Exception in callback", "exception": ValueError("x")},
        )
        shell.request_shutdown.assert_called_once_with("UNCAUGHT_EXCEPTION")

    @pytest.mark.asyncio
    async def test_handlers_restored_after_run(self, settings, fake_db, app_factory):
        before = threading.excepthook
        seen = []

        def on_serve():
            seen.append(threading.excepthook)

        shell = make_shell(settings, fake_db, app_factory, FakeServer(on_serve=on_serve))

        await shell.run()
        assert seen == [shell._thread_excepthook]
        assert threading.excepthook is before

    @pytest.mark.asyncio
    async def test_thread_exception_starts_drain(self, settings, fake_db, app_factory):
        shell = make_shell(settings, fake_db, app_factory, FakeServer())
        shell._loop = asyncio.get_running_loop()
        shell.request_shutdown = MagicMock()

        error = ValueError("worker failed")
        shell._thread_excepthook(
            SimpleNamespace(
                exc_type=ValueError,
                exc_value=error,
                exc_traceback=None,
                thread=threading.current_thread(),
            )
        )
        await asyncio.sleep(0)

        shell.request_shutdown.assert_called_once_with("UNCAUGHT_EXCEPTION")


class TestEntryPoint:
    """Tests for the command line entry point."""

    def test_configuration_error_exits_before_start(self, monkeypatch):
        monkeypatch.setenv("NODE_ENV", "bogus")
        shell_cls = MagicMock()
        monkeypatch.setattr(main, "ProcessShell", shell_cls)

        assert main.main([]) == 1
        shell_cls.assert_not_called()

    def test_overrides(self, settings):
        args = main.parse_args(["--host", "127.0.0.1", "--port", "8080", "--log-level", "DEBUG"])
        updated = main.apply_overrides(settings, args)

        assert (updated.server.host, updated.server.port) == ("127.0.0.1", 8080)
        assert updated.logging.level == "DEBUG"
        assert settings.server.port == 3000

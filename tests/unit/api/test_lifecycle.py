"""Unit tests for the lifecycle manager with the server loop simulated."""

import asyncio
import socket
import threading
from collections.abc import Callable
from functools import partial
from typing import Any

import pytest
from pytest_mock import MockerFixture
from starlette.types import Message, Receive, Scope, Send

from starterkit.api.lifecycle import (
    DrainOutcome,
    LifecycleManager,
    ListenerTimeouts,
    ServerStartupError,
    ServerState,
    _ManagedServer,
)
from starterkit.core.config import Settings
from tests.fixtures.asgi import SendRecorder, empty_receive, responding_app

type SettingsFactory = Callable[..., Settings]


async def serve_until_exit(self: _ManagedServer, sockets: Any = None) -> None:
    """Server loop that starts and honors ``should_exit``."""
    self.started = True
    while not self.should_exit:
        await asyncio.sleep(0.01)


async def serve_until_forced(self: _ManagedServer, sockets: Any = None) -> None:
    """Server loop whose connections never finish on their own."""
    self.started = True
    while not self.force_exit:
        await asyncio.sleep(0.01)


async def fail_startup(self: _ManagedServer, sockets: Any = None) -> None:
    """Server loop ending before startup completed, as on a lifespan failure."""
    await asyncio.sleep(0)


async def exit_on_startup_failure(
    self: _ManagedServer, sockets: Any = None
) -> None:
    """Server loop exiting the process on startup failure, as uvicorn does."""
    await asyncio.sleep(0)
    raise SystemExit(3)


async def end_unexpectedly(self: _ManagedServer, sockets: Any = None) -> None:
    """Server loop that starts and then ends without being asked to."""
    self.started = True
    await asyncio.sleep(0.05)


@pytest.fixture
def make_settings() -> SettingsFactory:
    """Build settings on an ephemeral port with custom server timeouts."""

    def factory(**server_config: float) -> Settings:
        return Settings(
            api_host="127.0.0.1",
            api_port=0,
            observability_config={"enable_tracing": False, "exporter_type": "none"},
            server_config={"shutdown_timeout": 2.0, "hook_timeout": 1.0}
            | server_config,
        )

    return factory


async def wait_for_state(
    manager: LifecycleManager, state: ServerState, timeout: float = 2.0
) -> None:
    """Poll until ``manager`` reaches ``state``."""
    async with asyncio.timeout(timeout):
        while manager.state is not state:
            await asyncio.sleep(0.01)


@pytest.mark.unit
class TestLifecycleManager:
    """State transitions and exit codes."""

    async def test_graceful_shutdown(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """A shutdown request drains and stops with exit code 0."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_exit)
        manager = LifecycleManager(responding_app(), make_settings())
        assert manager.state is ServerState.CREATED

        task = asyncio.create_task(manager.serve())
        await wait_for_state(manager, ServerState.RUNNING)
        assert manager.bound_address is not None
        assert manager.bound_address[1] > 0

        manager.request_shutdown()
        exit_code = await asyncio.wait_for(task, 5)

        assert exit_code == 0
        assert manager.state is ServerState.STOPPED
        assert manager.drain_outcome is DrainOutcome.GRACEFUL

    async def test_drain_timeout_forces(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """Busy connections past the drain bound are force-closed."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_forced)
        manager = LifecycleManager(
            responding_app(), make_settings(shutdown_timeout=0.1)
        )

        task = asyncio.create_task(manager.serve())
        await wait_for_state(manager, ServerState.RUNNING)
        manager.request_shutdown()
        exit_code = await asyncio.wait_for(task, 5)

        assert exit_code == 0
        assert manager.state is ServerState.STOPPED
        assert manager.drain_outcome is DrainOutcome.FORCED

    async def test_second_request_forces_immediately(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """A repeated shutdown request skips the rest of the drain bound."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_forced)
        manager = LifecycleManager(
            responding_app(), make_settings(shutdown_timeout=30.0)
        )

        task = asyncio.create_task(manager.serve())
        await wait_for_state(manager, ServerState.RUNNING)
        manager.request_shutdown()
        await wait_for_state(manager, ServerState.DRAINING)
        manager.request_shutdown()
        exit_code = await asyncio.wait_for(task, 5)

        assert exit_code == 0
        assert manager.drain_outcome is DrainOutcome.FORCED

    async def test_shutdown_requested_before_serving(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """A pending request makes the manager stop right after starting."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_exit)
        manager = LifecycleManager(responding_app(), make_settings())

        manager.request_shutdown()
        exit_code = await asyncio.wait_for(manager.serve(), 5)

        assert exit_code == 0
        assert manager.state is ServerState.STOPPED

    async def test_request_shutdown_from_another_thread(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """The request is handed to the event loop safely."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_exit)
        manager = LifecycleManager(responding_app(), make_settings())

        task = asyncio.create_task(manager.serve())
        await wait_for_state(manager, ServerState.RUNNING)
        thread = threading.Thread(target=manager.request_shutdown)
        thread.start()
        thread.join()

        assert await asyncio.wait_for(task, 5) == 0

    async def test_application_startup_failure(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """A server loop that never started ends in FAILED with exit code 1."""
        mocker.patch.object(_ManagedServer, "serve", fail_startup)
        manager = LifecycleManager(responding_app(), make_settings())
        hook = mocker.AsyncMock()
        manager.register_shutdown_hook("database", hook)

        exit_code = await asyncio.wait_for(manager.serve(), 5)

        assert exit_code == 1
        assert manager.state is ServerState.FAILED
        assert manager.drain_outcome is None
        hook.assert_awaited_once()

    async def test_startup_exit_is_contained(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """uvicorn's sys.exit on startup failure ends in FAILED, not a crash."""
        mocker.patch.object(_ManagedServer, "serve", exit_on_startup_failure)
        manager = LifecycleManager(responding_app(), make_settings())
        hook = mocker.AsyncMock()
        manager.register_shutdown_hook("database", hook)

        exit_code = await asyncio.wait_for(manager.serve(), 5)

        assert exit_code == 1
        assert manager.state is ServerState.FAILED
        hook.assert_awaited_once()

    async def test_unexpected_loop_end(
        self,
        make_settings: SettingsFactory,
        mocker: MockerFixture,
        log_records: list[dict[str, Any]],
    ) -> None:
        """The accept loop ending on its own is fatal."""
        mocker.patch.object(_ManagedServer, "serve", end_unexpectedly)
        manager = LifecycleManager(responding_app(), make_settings())
        hook = mocker.AsyncMock()
        manager.register_shutdown_hook("database", hook)

        exit_code = await asyncio.wait_for(manager.serve(), 5)

        assert exit_code == 1
        assert manager.state is ServerState.FAILED
        hook.assert_awaited_once()
        assert any(
            r["message"] == "Server loop ended unexpectedly"
            and r["level"].name == "CRITICAL"
            for r in log_records
        )

    async def test_bind_failure(self, make_settings: SettingsFactory) -> None:
        """An address in use fails startup with ServerStartupError."""
        with socket.create_server(("127.0.0.1", 0)) as occupied:
            port = occupied.getsockname()[1]
            settings = make_settings()
            settings.api_port = port
            manager = LifecycleManager(responding_app(), settings)

            with pytest.raises(ServerStartupError, match=str(port)):
                await manager.serve()

        assert manager.state is ServerState.FAILED

    async def test_serve_only_once(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """A manager cannot be reused."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_exit)
        manager = LifecycleManager(responding_app(), make_settings())
        manager.request_shutdown()
        await manager.serve()

        with pytest.raises(RuntimeError, match="Cannot serve from state stopped"):
            await manager.serve()


@pytest.mark.unit
class TestShutdownHooks:
    """Hook ordering and isolation."""

    @pytest.fixture
    def manager(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> LifecycleManager:
        """Manager that stops as soon as it has started."""
        mocker.patch.object(_ManagedServer, "serve", serve_until_exit)
        manager = LifecycleManager(responding_app(), make_settings())
        manager.request_shutdown()
        return manager

    async def test_reverse_registration_order(self, manager: LifecycleManager) -> None:
        """Hooks run last registered first."""
        calls: list[str] = []

        async def record(name: str) -> None:
            calls.append(name)

        for name in ("logging", "tracing", "database"):
            manager.register_shutdown_hook(name, partial(record, name))

        await manager.serve()

        assert calls == ["database", "tracing", "logging"]

    async def test_slow_hook_does_not_block_the_rest(
        self, manager: LifecycleManager, log_records: list[dict[str, Any]]
    ) -> None:
        """A hook exceeding its timeout is abandoned and logged."""
        calls: list[str] = []

        async def slow() -> None:
            await asyncio.sleep(10)

        async def fast() -> None:
            calls.append("fast")

        manager.register_shutdown_hook("fast", fast)
        manager.register_shutdown_hook("slow", slow, timeout=0.05)

        exit_code = await asyncio.wait_for(manager.serve(), 5)

        assert exit_code == 0
        assert calls == ["fast"]
        assert any("slow timed out" in r["message"] for r in log_records)

    async def test_failing_hook_does_not_block_the_rest(
        self, manager: LifecycleManager, log_records: list[dict[str, Any]]
    ) -> None:
        """A raising hook is logged and the next one still runs."""
        calls: list[str] = []

        async def broken() -> None:
            raise OSError("disk full")

        async def fine() -> None:
            calls.append("fine")

        manager.register_shutdown_hook("fine", fine)
        manager.register_shutdown_hook("broken", broken)

        assert await manager.serve() == 0
        assert calls == ["fine"]
        failures = [
            r for r in log_records if r["message"] == "Shutdown hook broken failed"
        ]
        assert len(failures) == 1
        assert failures[0]["exception"] is not None

    async def test_sync_hook_runs_in_worker_thread(
        self, manager: LifecycleManager
    ) -> None:
        """Plain callables are run off the event loop."""
        threads: list[int] = []

        manager.register_shutdown_hook(
            "sync", lambda: threads.append(threading.get_ident())
        )

        await manager.serve()

        assert threads
        assert threads[0] != threading.get_ident()

    def test_default_timeout_from_settings(
        self, make_settings: SettingsFactory, mocker: MockerFixture
    ) -> None:
        """Hooks without a timeout use the configured hook timeout."""
        manager = LifecycleManager(responding_app(), make_settings(hook_timeout=3.0))
        manager.register_shutdown_hook("a", mocker.Mock())
        manager.register_shutdown_hook("b", mocker.Mock(), timeout=7.0)

        assert [hook.timeout for hook in manager._hooks] == [3.0, 7.0]


@pytest.mark.unit
class TestListenerTimeouts:
    """Per-read and per-write bounds."""

    async def test_slow_read_times_out(self) -> None:
        """A client that stalls while sending the body trips the read bound."""

        async def stalled_receive() -> Message:
            await asyncio.sleep(10)
            return {"type": "http.request", "body": b""}

        async def reading_app(scope: Scope, receive: Receive, send: Send) -> None:
            await receive()

        wrapped = ListenerTimeouts(reading_app, read_timeout=0.05, write_timeout=1)

        with pytest.raises(TimeoutError):
            await wrapped({"type": "http"}, stalled_receive, SendRecorder())

    async def test_disconnect_wait_is_unbounded(self) -> None:
        """After the body is complete, receive is passed through unbounded."""
        messages: list[Message] = [
            {"type": "http.request", "body": b"", "more_body": False},
            {"type": "http.disconnect"},
        ]

        async def receive() -> Message:
            message = messages.pop(0)
            if message["type"] == "http.disconnect":
                await asyncio.sleep(0.1)
            return message

        received: list[str] = []

        async def reading_app(scope: Scope, receive: Receive, send: Send) -> None:
            received.append((await receive())["type"])
            received.append((await receive())["type"])

        wrapped = ListenerTimeouts(reading_app, read_timeout=0.05, write_timeout=1)
        await wrapped({"type": "http"}, receive, SendRecorder())

        assert received == ["http.request", "http.disconnect"]

    async def test_slow_write_times_out(self) -> None:
        """A client that stops reading trips the write bound."""

        async def stalled_send(message: Message) -> None:
            await asyncio.sleep(10)

        wrapped = ListenerTimeouts(responding_app(), read_timeout=1, write_timeout=0.05)

        with pytest.raises(TimeoutError):
            await wrapped({"type": "http"}, empty_receive, stalled_send)

    async def test_passes_messages_through(self) -> None:
        """Messages are forwarded unchanged."""
        send = SendRecorder()
        wrapped = ListenerTimeouts(responding_app(), read_timeout=1, write_timeout=1)

        await wrapped({"type": "http"}, empty_receive, send)

        assert send.status == 200
        assert send.body == b'{"ok":true}'

    async def test_non_http_scopes_are_untouched(self, mocker: MockerFixture) -> None:
        """Lifespan traffic reaches the app with the original callables."""
        inner = mocker.AsyncMock()
        receive = mocker.AsyncMock()
        send = mocker.AsyncMock()
        wrapped = ListenerTimeouts(inner, read_timeout=1, write_timeout=1)

        await wrapped({"type": "lifespan"}, receive, send)

        inner.assert_awaited_once_with({"type": "lifespan"}, receive, send)

"""Process lifecycle: listener startup, signal handling and graceful drain.

:class:`LifecycleManager` owns the listening socket and the uvicorn server
loop and moves through::

    CREATED -> STARTING -> RUNNING -> DRAINING -> STOPPED
                  |
                  +-> FAILED

- **Starting**: the socket is bound by the manager itself, so an unavailable
  address fails fast with :class:`ServerStartupError`. The application
  lifespan (database check) runs next; if it fails the manager ends in
  ``FAILED``.
- **Running**: uvicorn accepts connections in its own task while the manager
  waits for SIGINT/SIGTERM, :meth:`LifecycleManager.request_shutdown` or an
  unexpected end of the server loop.
- **Draining**: uvicorn stops accepting, idle keep-alive connections are
  closed and busy ones may finish within ``shutdown_timeout``. Past that
  bound, or on a second signal, the remaining connections are closed.
- **Stopped**: shutdown hooks have run, last registered first, each under its
  own timeout.

uvicorn's own signal handling is disabled; signals belong to the manager.
"""

import asyncio
import inspect
import signal
import socket
from collections.abc import Awaitable, Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Final

import uvicorn
from loguru import logger
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from starterkit.core.config import Settings
from starterkit.core.logging import uvicorn_log_config

# Bound on waiting for the server loop once connections were force-closed
FORCE_CLOSE_GRACE_SECONDS: Final[float] = 5.0
STARTUP_POLL_INTERVAL: Final[float] = 0.05
LISTEN_BACKLOG: Final[int] = 2048

HANDLED_SIGNALS: Final[tuple[signal.Signals, ...]] = (signal.SIGINT, signal.SIGTERM)

type ShutdownCallback = Callable[[], Awaitable[None] | None]


class ServerState(Enum):
    """States of the lifecycle manager."""

    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"
    FAILED = "failed"


class DrainOutcome(Enum):
    """How the drain phase ended."""

    GRACEFUL = "graceful"
    """All in-flight requests finished within the drain timeout."""

    FORCED = "forced"
    """Remaining connections were closed by the manager."""


class ServerStartupError(RuntimeError):
    """Raised when the listener cannot be started. Fatal for the process."""


@dataclass(frozen=True, slots=True)
class ShutdownHook:
    """A callback run once during shutdown under its own timeout."""

    name: str
    callback: ShutdownCallback
    timeout: float


class ListenerTimeouts:
    """ASGI wrapper bounding each read of request data and each write.

    ``read_timeout`` applies to ``receive`` until the request body is complete;
    waiting for a disconnect after that is not bounded. ``write_timeout``
    applies to every ``send``. A timeout surfaces as :class:`TimeoutError` in
    the application.

    Args:
        app: The ASGI application to wrap.
        read_timeout: Seconds allowed for each receive of request data.
        write_timeout: Seconds allowed for each send of response data.
    """

    def __init__(
        self, app: ASGIApp, *, read_timeout: float, write_timeout: float
    ) -> None:
        self.app = app
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        body_complete = False

        async def timed_receive() -> Message:
            nonlocal body_complete
            if body_complete:
                return await receive()
            message = await asyncio.wait_for(receive(), self.read_timeout)
            if message["type"] != "http.request" or not message.get("more_body"):
                body_complete = True
            return message

        async def timed_send(message: Message) -> None:
            await asyncio.wait_for(send(message), self.write_timeout)

        await self.app(scope, timed_receive, timed_send)


class _ManagedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the lifecycle manager."""

    @contextmanager
    def capture_signals(self) -> Generator[None]:
        yield

    async def serve_sockets(self, sockets: list[socket.socket]) -> None:
        """Serve on already bound ``sockets`` until told to exit.

        uvicorn calls ``sys.exit`` when application startup fails. Here that
        ends the serve task normally instead of unwinding the event loop, so
        the manager sees a loop that never started.
        """
        try:
            await self.serve(sockets=sockets)
        except SystemExit as e:
            logger.error("Server exited during startup with status {}", e.code)


class LifecycleManager:
    """Run an ASGI application until a termination signal, then drain it.

    Args:
        app: The application to serve.
        settings: Supplies the listen address and the server timeouts.

    Example:
        manager = LifecycleManager(create_app(settings), settings)
        manager.register_shutdown_hook("database", close_database)
        sys.exit(manager.run())
    """

    def __init__(self, app: ASGIApp, settings: Settings) -> None:
        self.app = app
        self.settings = settings
        self._state = ServerState.CREATED
        self._drain_outcome: DrainOutcome | None = None
        self._hooks: list[ShutdownHook] = []
        self._bound_address: tuple[str, int] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._shutdown_requested = asyncio.Event()
        self._force_requested = asyncio.Event()

    @property
    def state(self) -> ServerState:
        """Current lifecycle state."""
        return self._state

    @property
    def drain_outcome(self) -> DrainOutcome | None:
        """How draining ended, once it has."""
        return self._drain_outcome

    @property
    def bound_address(self) -> tuple[str, int] | None:
        """Host and port actually bound; useful when port 0 was configured."""
        return self._bound_address

    def _set_state(self, state: ServerState) -> None:
        logger.debug("Lifecycle state {} -> {}", self._state.value, state.value)
        self._state = state

    def register_shutdown_hook(
        self,
        name: str,
        callback: ShutdownCallback,
        timeout: float | None = None,
    ) -> None:
        """Register a callback to run during shutdown.

        Hooks run in reverse registration order. Coroutine functions are
        awaited; plain callables run in a worker thread.

        Args:
            name: Label used in log records.
            callback: Callable taking no arguments.
            timeout: Seconds allowed for this hook. Defaults to
                ``server_config.hook_timeout``.
        """
        if timeout is None:
            timeout = self.settings.server_config.hook_timeout
        self._hooks.append(ShutdownHook(name=name, callback=callback, timeout=timeout))

    def request_shutdown(self) -> None:
        """Begin draining as if a termination signal had been received.

        Safe to call from any thread.
        """
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._on_shutdown_request, "request")
        else:
            self._shutdown_requested.set()

    def run(self) -> int:
        """Serve on a fresh event loop and return the process exit code."""
        return asyncio.run(self.serve())

    async def serve(self) -> int:
        """Start the listener, wait for termination and shut down.

        Returns:
            int: 0 after an orderly shutdown, 1 if the application failed to
                start or the server loop ended on its own.

        Raises:
            ServerStartupError: If the listen address cannot be bound.
        """
        if self._state is not ServerState.CREATED:
            msg = f"Cannot serve from state {self._state.value}"
            raise RuntimeError(msg)

        self._set_state(ServerState.STARTING)
        self._loop = asyncio.get_running_loop()
        sock = self._bind()

        server = _ManagedServer(self._build_config())
        serve_task = asyncio.create_task(
            server.serve_sockets([sock]), name="uvicorn-serve"
        )
        self._install_signal_handlers()
        try:
            if not await self._wait_until_started(server, serve_task):
                self._set_state(ServerState.FAILED)
                logger.critical("Application failed to start")
                await self._run_shutdown_hooks()
                return 1

            self._set_state(ServerState.RUNNING)
            host, port = sock.getsockname()[:2]
            logger.info(
                "{} v{} listening on {}:{}",
                self.settings.app_name,
                self.settings.app_version,
                host,
                port,
            )

            exit_code = await self._wait_for_termination(server, serve_task)
            await self._run_shutdown_hooks()
        finally:
            self._remove_signal_handlers()
            sock.close()

        if exit_code == 0:
            self._set_state(ServerState.STOPPED)
            logger.info("Server stopped")
        else:
            self._set_state(ServerState.FAILED)
        return exit_code

    def _bind(self) -> socket.socket:
        host = self.settings.api_host
        port = self.settings.listen_port
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            sock = socket.create_server(
                (host, port), family=family, backlog=LISTEN_BACKLOG
            )
        except OSError as e:
            self._set_state(ServerState.FAILED)
            logger.critical("Cannot bind {}:{}: {}", host, port, e)
            msg = f"Cannot bind {host}:{port}: {e}"
            raise ServerStartupError(msg) from e

        bound_host, bound_port = sock.getsockname()[:2]
        self._bound_address = (bound_host, bound_port)
        return sock

    def _build_config(self) -> uvicorn.Config:
        server_config = self.settings.server_config
        return uvicorn.Config(
            ListenerTimeouts(
                self.app,
                read_timeout=server_config.read_timeout,
                write_timeout=server_config.write_timeout,
            ),
            lifespan="on",
            access_log=False,
            log_config=uvicorn_log_config(),
            timeout_keep_alive=server_config.idle_timeout,
            timeout_graceful_shutdown=None,
        )

    async def _wait_until_started(
        self, server: _ManagedServer, serve_task: asyncio.Task[None]
    ) -> bool:
        while not server.started:
            if serve_task.done():
                self._log_server_exit(serve_task)
                return False
            await asyncio.sleep(STARTUP_POLL_INTERVAL)
        return True

    async def _wait_for_termination(
        self, server: _ManagedServer, serve_task: asyncio.Task[None]
    ) -> int:
        shutdown_wait = asyncio.create_task(self._shutdown_requested.wait())
        try:
            await asyncio.wait(
                {serve_task, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            shutdown_wait.cancel()

        if serve_task.done():
            logger.critical("Server loop ended unexpectedly")
            self._log_server_exit(serve_task)
            return 1

        self._set_state(ServerState.DRAINING)
        timeout = self.settings.server_config.shutdown_timeout
        logger.info("Draining connections (timeout {}s)", timeout)
        self._drain_outcome = await self._drain(server, serve_task, timeout)
        logger.info("Drain finished: {}", self._drain_outcome.value)
        return 0

    async def _drain(
        self,
        server: _ManagedServer,
        serve_task: asyncio.Task[None],
        timeout: float,
    ) -> DrainOutcome:
        server.should_exit = True

        force_wait = asyncio.create_task(self._force_requested.wait())
        try:
            await asyncio.wait(
                {serve_task, force_wait},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            force_wait.cancel()

        if serve_task.done():
            self._log_server_exit(serve_task)
            return DrainOutcome.GRACEFUL

        await self._force_close(server, serve_task)
        return DrainOutcome.FORCED

    async def _force_close(
        self, server: _ManagedServer, serve_task: asyncio.Task[None]
    ) -> None:
        server.force_exit = True

        connections = list(server.server_state.connections)
        for connection in connections:
            transport = getattr(connection, "transport", None)
            if transport is not None and not transport.is_closing():
                transport.close()
        for task in list(server.server_state.tasks):
            task.cancel()

        logger.warning("Force-closed {} open connection(s)", len(connections))

        done, _ = await asyncio.wait({serve_task}, timeout=FORCE_CLOSE_GRACE_SECONDS)
        if not done:
            logger.error("Server loop did not stop after force close, cancelling")
            serve_task.cancel()
            await asyncio.wait({serve_task})
            return
        self._log_server_exit(serve_task)

    def _log_server_exit(self, serve_task: asyncio.Task[None]) -> None:
        if serve_task.cancelled():
            return
        exc = serve_task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Server loop raised {}", type(exc).__name__)

    async def _run_shutdown_hooks(self) -> None:
        for hook in reversed(self._hooks):
            try:
                await asyncio.wait_for(self._invoke_hook(hook), hook.timeout)
            except TimeoutError:
                logger.error(
                    "Shutdown hook {} timed out after {}s", hook.name, hook.timeout
                )
            except Exception as e:  # noqa: BLE001
                logger.opt(exception=e).error("Shutdown hook {} failed", hook.name)
            else:
                logger.debug("Shutdown hook {} completed", hook.name)

    @staticmethod
    async def _invoke_hook(hook: ShutdownHook) -> None:
        if inspect.iscoroutinefunction(hook.callback):
            await hook.callback()
            return
        result = await asyncio.to_thread(hook.callback)
        if inspect.isawaitable(result):
            await result

    def _on_shutdown_request(self, source: str) -> None:
        if self._shutdown_requested.is_set():
            logger.warning("Shutdown requested again ({}), forcing", source)
            self._force_requested.set()
            return
        logger.info("Shutdown requested ({})", source)
        self._shutdown_requested.set()

    def _install_signal_handlers(self) -> None:
        if self._loop is None:
            return
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._on_shutdown_request, sig.name)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not the main thread or no signal support on this platform
                logger.debug("Signal handler for {} not installed", sig.name)

    def _remove_signal_handlers(self) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.debug("Signal handler for {} not removed", sig.name)

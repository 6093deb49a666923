"""HTTP request logging with timing and response size tracking.

Emits exactly one ``Request completed`` record per request, after the inner
chain has finished, with:

- method, path and remote address
- the correlation fields bound to the request logger
- the status code and number of body bytes actually sent to the client
- elapsed time in milliseconds

Requests slower than the configured threshold are logged at WARNING and marked
``slow=True``.

This is plain ASGI middleware rather than ``BaseHTTPMiddleware`` so that it can
observe the messages passed to ``send`` and record what the client really
received, including responses produced by the recovery stage.
"""

import time

from loguru import logger
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from starterkit.api.constants import HTTP_500_INTERNAL_SERVER_ERROR
from starterkit.core.config import LogConfig
from starterkit.core.constants import MILLISECONDS_PER_SECOND
from starterkit.core.context import context_from_scope


def _remote_addr(scope: Scope) -> str:
    client = scope.get("client")
    if not client:
        return "unknown"
    host, port = client
    return f"{host}:{port}"


class RequestLoggingMiddleware:
    """Middleware for logging completed HTTP requests.

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        self.app = app
        self.slow_request_threshold_ms = log_config.slow_request_threshold_ms

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status_code: int | None = None
        bytes_sent = 0

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, bytes_sent
            if message["type"] == "http.response.start":
                status_code = message["status"]
            elif message["type"] == "http.response.body":
                bytes_sent += len(message.get("body", b""))
            await send(message)

        start_time = time.perf_counter()
        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND
            slow = duration_ms > self.slow_request_threshold_ms

            # Nothing was sent: the exception propagates and the server
            # answers 500 on our behalf
            final_status = status_code or HTTP_500_INTERNAL_SERVER_ERROR

            context = context_from_scope(scope)
            request_logger = context.logger if context else logger
            request_logger.log(
                "WARNING" if slow else "INFO",
                "Request completed",
                method=scope["method"],
                path=scope["path"],
                remote_addr=_remote_addr(scope),
                status_code=final_status,
                duration_ms=round(duration_ms, 2),
                bytes=bytes_sent,
                slow=slow,
            )

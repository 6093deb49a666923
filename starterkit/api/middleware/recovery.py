"""Containment of unexpected exceptions raised while handling a request.

Domain errors are turned into responses by the exception handlers; anything
else that escapes a handler or an inner stage is a defect. This middleware
catches it once, logs it with its traceback through the request logger and
answers ``500 {"error": "internal server error"}`` if no response has been
started. It never re-raises, so a defect cannot reach the server loop.
"""

from loguru import logger
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from starterkit.api.constants import (
    HTTP_500_INTERNAL_SERVER_ERROR,
    INTERNAL_ERROR_MESSAGE,
)
from starterkit.api.schemas.errors import ErrorResponse
from starterkit.api.utils.responses import ORJSONResponse
from starterkit.core.context import context_from_scope
from starterkit.core.error_context import sanitize_error_context


class RecoveryMiddleware:
    """Catch-all boundary placed directly around the router.

    Args:
        app: The ASGI application to wrap.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:  # noqa: BLE001
            context = context_from_scope(scope)
            request_logger = context.logger if context else logger

            error_context = sanitize_error_context(
                exc,
                {
                    "request_method": scope["method"],
                    "request_path": scope["path"],
                    "response_started": response_started,
                },
            )
            request_logger.opt(exception=exc).error(
                "Recovered from unhandled {exception_type}",
                exception_type=type(exc).__name__,
                **error_context,
            )

            if response_started:
                return

            response = ORJSONResponse(
                ErrorResponse(error=INTERNAL_ERROR_MESSAGE),
                status_code=HTTP_500_INTERNAL_SERVER_ERROR,
            )
            await response(scope, receive, send)

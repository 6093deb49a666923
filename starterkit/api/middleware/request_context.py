"""Request context middleware for correlation and trace linkage.

Derives the :class:`~starterkit.core.context.CorrelationContext` of every
request and makes it available to the rest of the chain:

- **Request state**: stored in the ASGI scope, read by inner middleware and by
  handlers through a FastAPI dependency
- **Loguru**: correlation fields are contextualized for the duration of the
  request, so library logs carry them too
- **Tracing**: the correlation id is recorded on the active server span
- **Response headers**: ``X-Request-ID`` echoes the correlation id to the client

This stage cannot fail and always calls the next one.
"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware

from starterkit.core.constants import REQUEST_ID_HEADER
from starterkit.core.context import derive_context, with_context


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to attach the correlation context to each request."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request with its correlation context in place.

        Args:
            request: The incoming request.
            call_next: The next middleware or endpoint.

        Returns:
            Response: Response carrying the ``X-Request-ID`` header.
        """
        span = trace.get_current_span()
        context = derive_context(request.headers, logger, span)
        with_context(request.scope, context)

        if span.is_recording():
            span.set_attribute("correlation_id", context.correlation_id)

        # contextualize is scoped to this block and cleaned up afterwards
        with logger.contextualize(**context.log_fields):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = context.correlation_id
        return response

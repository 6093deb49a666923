"""Origin policy middleware.

Adds permissive cross-origin headers to every response and answers pre-flight
``OPTIONS`` requests directly with ``204 No Content``, without running any of
the inner stages.
"""

from collections.abc import Awaitable, Callable, Iterable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from starterkit.api.constants import (
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_ORIGIN,
    CORS_MAX_AGE,
)


class OriginPolicyMiddleware(BaseHTTPMiddleware):
    """Middleware applying the cross-origin policy.

    Args:
        app: The ASGI application to wrap.
        allow_origin: Value of ``Access-Control-Allow-Origin``.
        allow_methods: Methods listed in ``Access-Control-Allow-Methods``.
        allow_headers: Headers listed in ``Access-Control-Allow-Headers``.
        max_age: Pre-flight cache lifetime in seconds.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        allow_origin: str = CORS_ALLOW_ORIGIN,
        allow_methods: Iterable[str] = CORS_ALLOW_METHODS,
        allow_headers: Iterable[str] = CORS_ALLOW_HEADERS,
        max_age: int = CORS_MAX_AGE,
    ) -> None:
        super().__init__(app)
        self.policy_headers = {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": ", ".join(allow_methods),
            "Access-Control-Allow-Headers": ", ".join(allow_headers),
            "Access-Control-Max-Age": str(max_age),
        }

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Answer pre-flight requests, decorate everything else.

        Args:
            request: The incoming request.
            call_next: The next middleware or endpoint.

        Returns:
            Response: The response with the policy headers set.
        """
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)

        response.headers.update(self.policy_headers)
        return response

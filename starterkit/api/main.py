"""FastAPI application factory.

:func:`create_app` assembles the application:

- Application lifespan (database check at startup)
- Exception handlers
- Middleware chain in its fixed order
- Health endpoint and versioned resource routers
- OpenTelemetry instrumentation when a tracer provider is given

Process-wide concerns (logging, the tracer provider, signal handling) are set
up by the entry point and passed in; the factory does not create them.

Middleware added with ``add_middleware`` runs in reverse order of
registration: the last one added is the first to see a request.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from opentelemetry.sdk.trace import TracerProvider

from starterkit.api.constants import API_V1_PREFIX
from starterkit.api.middleware.cors import OriginPolicyMiddleware
from starterkit.api.middleware.error_handler import register_exception_handlers
from starterkit.api.middleware.recovery import RecoveryMiddleware
from starterkit.api.middleware.request_context import RequestContextMiddleware
from starterkit.api.middleware.request_logging import RequestLoggingMiddleware
from starterkit.api.utils.responses import ORJSONResponse
from starterkit.core.config import Settings, get_settings
from starterkit.core.observability import instrument_app
from starterkit.infrastructure.database.session import check_database_connection
from starterkit.users.router import router as users_router


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.

    Raises:
        RuntimeError: If database connection fails during startup.
    """
    is_healthy, error_msg = await check_database_connection()

    if is_healthy:
        logger.info("Database connection successful")
    else:
        logger.error("Database connection failed during startup: {}", error_msg)
        msg = f"Database connection failed: {error_msg}"
        raise RuntimeError(msg)

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    yield

    # Engine disposal is a shutdown hook of the lifecycle manager
    logger.info("Application shutdown complete")


def create_app(
    settings: Settings | None = None,
    *,
    tracer_provider: TracerProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().
        tracer_provider: Provider to instrument the app with. Tracing is off
            when omitted.

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    register_exception_handlers(application)

    # 4. Recovery (innermost, directly around the router)
    application.add_middleware(RecoveryMiddleware)

    # 3. Request logging (sees the final status, including recovered failures)
    application.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)

    # 2. Request context (correlation id for everything below)
    application.add_middleware(RequestContextMiddleware)

    # 1. Origin policy (outermost, answers pre-flight requests)
    application.add_middleware(OriginPolicyMiddleware)

    @application.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint for monitoring and container orchestration.

        Returns:
            dict[str, str]: Status, service name and version.
        """
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
        }

    application.include_router(users_router, prefix=API_V1_PREFIX)

    # Instrument last so the server span wraps the whole chain
    if tracer_provider is not None:
        instrument_app(application, tracer_provider)

    return application

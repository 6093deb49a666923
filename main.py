"""Main entry point for running the starterkit service."""

import sys
from functools import partial

from loguru import logger

from starterkit.api.lifecycle import LifecycleManager, ServerStartupError
from starterkit.api.main import create_app
from starterkit.core.config import get_settings
from starterkit.core.logging import setup_logging, shutdown_logging
from starterkit.core.observability import setup_tracing, shutdown_tracing
from starterkit.infrastructure.database.session import close_database


def main() -> int:
    """Configure process-wide services, serve until terminated, return exit code."""
    settings = get_settings()

    # Logging and tracing are initialized once, before the listener starts
    setup_logging(settings)
    tracer_provider = setup_tracing(settings)

    app = create_app(settings, tracer_provider=tracer_provider)
    manager = LifecycleManager(app, settings)

    # Hooks run last-registered first: database, then tracing, then logs
    manager.register_shutdown_hook("logging", shutdown_logging)
    if tracer_provider is not None:
        hook_timeout = settings.server_config.hook_timeout
        # Flush and provider shutdown each get the hook timeout
        manager.register_shutdown_hook(
            "tracing",
            partial(shutdown_tracing, tracer_provider, hook_timeout),
            timeout=2 * hook_timeout,
        )
    manager.register_shutdown_hook("database", close_database)

    try:
        return manager.run()
    except ServerStartupError:
        logger.opt(exception=True).critical("Server failed to start")
        return 1


if __name__ == "__main__":
    sys.exit(main())

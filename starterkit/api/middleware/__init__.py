"""Middleware chain wrapped around every request.

Stages, outermost to innermost, as registered by
:func:`starterkit.api.main.create_app`:

1. **OriginPolicyMiddleware**: cross-origin headers, answers pre-flight requests
2. **RequestContextMiddleware**: correlation id, request logger, trace linkage
3. **RequestLoggingMiddleware**: one completion record per request
4. **RecoveryMiddleware**: contains unexpected exceptions as a 500

Domain errors never reach the recovery stage; they are turned into responses
by the handlers in :mod:`starterkit.api.middleware.error_handler`.
"""

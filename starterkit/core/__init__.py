"""Core package for cross-cutting application functionality.

- **config**: Centralized configuration management with environment support
- **context**: Per-request correlation context
- **exceptions**: Domain error taxonomy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging built on Loguru
- **observability**: Distributed tracing with OpenTelemetry
"""

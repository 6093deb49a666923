"""Per-request correlation context.

A :class:`CorrelationContext` is derived once at pipeline entry and is
immutable afterwards. It travels with the request in its ASGI scope state and
is handed explicitly to the code that needs it (handlers receive it through a
FastAPI dependency); there is no process-global holder.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

from opentelemetry import trace

from starterkit.core.constants import REQUEST_ID_HEADER

if TYPE_CHECKING:
    from loguru import Logger

STATE_KEY: Final[str] = "correlation"


@dataclass(frozen=True, slots=True)
class CorrelationContext:
    """Correlation data bound to a single request.

    Attributes:
        correlation_id: Identifier shared by every log record of the request.
        trace_id: Hex trace id of the active span, if tracing produced one.
        span_id: Hex span id of the active span, if tracing produced one.
        logger: Logger with the fields above bound. Derive children with
            ``logger.bind(...)``; the binding itself never changes.
    """

    correlation_id: str
    trace_id: str | None
    span_id: str | None
    logger: Logger

    @property
    def log_fields(self) -> dict[str, str]:
        """Fields bound to :attr:`logger`."""
        fields = {"correlation_id": self.correlation_id}
        if self.trace_id and self.span_id:
            fields["trace_id"] = self.trace_id
            fields["span_id"] = self.span_id
        return fields


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.

    Examples:
        >>> len(generate_correlation_id())
        36
    """
    return str(uuid.uuid4())


def derive_context(
    headers: Mapping[str, str],
    base_logger: Logger,
    span: trace.Span | None = None,
) -> CorrelationContext:
    """Build the correlation context for an incoming request.

    The ``X-Request-ID`` header is reused when present and non-empty, otherwise
    a fresh id is generated. Trace identifiers are captured from ``span`` (or
    the current OpenTelemetry span) only when its context is valid; a missing
    span is not an error.

    Args:
        headers: Incoming request headers.
        base_logger: Process-wide logger to derive the request logger from.
        span: Span to read trace identifiers from. Defaults to the current span.

    Returns:
        CorrelationContext: The immutable context for this request.
    """
    correlation_id = headers.get(REQUEST_ID_HEADER) or generate_correlation_id()

    trace_id: str | None = None
    span_id: str | None = None
    span_context = (span or trace.get_current_span()).get_span_context()
    if span_context.is_valid:
        trace_id = trace.format_trace_id(span_context.trace_id)
        span_id = trace.format_span_id(span_context.span_id)

    fields = {"correlation_id": correlation_id}
    if trace_id and span_id:
        fields["trace_id"] = trace_id
        fields["span_id"] = span_id

    return CorrelationContext(
        correlation_id=correlation_id,
        trace_id=trace_id,
        span_id=span_id,
        logger=base_logger.bind(**fields),
    )


def with_context(scope: MutableMapping[str, Any], context: CorrelationContext) -> None:
    """Attach ``context`` to the request described by an ASGI ``scope``."""
    scope.setdefault("state", {})[STATE_KEY] = context


def context_from_scope(scope: Mapping[str, Any]) -> CorrelationContext | None:
    """Return the context attached to ``scope``, or None before derivation."""
    state = scope.get("state") or {}
    return state.get(STATE_KEY)

"""Shared FastAPI dependencies for route handlers."""

from typing import Annotated

from fastapi import Depends, Request
from loguru import logger

from starterkit.core.context import (
    CorrelationContext,
    context_from_scope,
    derive_context,
)


def get_correlation_context(request: Request) -> CorrelationContext:
    """Return the correlation context attached by the request context middleware.

    Falls back to deriving one from the request headers when the app runs
    without the middleware (e.g. a bare router under test).
    """
    context = context_from_scope(request.scope)
    if context is None:
        context = derive_context(request.headers, logger)
    return context


RequestCorrelation = Annotated[CorrelationContext, Depends(get_correlation_context)]

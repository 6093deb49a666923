"""Domain error taxonomy shared by the service layer and the API boundary.

The set of error kinds is deliberately closed:

- **ValidationError**: malformed input, detected before any store call (400)
- **NotFoundError**: the store confirmed the resource is absent (404)
- **InternalError**: any other store or infrastructure failure (500)

Anything else escaping a handler is a programming defect and is contained by
the recovery middleware rather than modelled here.
"""

from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for the application."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""


class Severity(Enum):
    """Severity levels used to pick the log level of a handled error."""

    LOW = "LOW"
    """Expected during normal operation (bad input, missing resource)."""

    MEDIUM = "MEDIUM"
    """May affect some features but not critical operations."""

    HIGH = "HIGH"
    """Infrastructure failure impacting request handling."""


class StarterkitError(Exception):
    """Base exception class for all domain errors.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    @property
    def is_expected(self) -> bool:
        """Whether this error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(StarterkitError):
    """Raised when request input is malformed.

    The message is returned to the client verbatim, so it should say what to fix.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(StarterkitError):
    """Raised when an identifier lookup matches no live row."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class InternalError(StarterkitError):
    """Raised when the data store fails for any reason other than "no rows".

    The message and cause are for diagnostics only; clients receive a generic
    message.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)

"""Error response schema shared by every failing endpoint.

All errors, whether domain errors, framework errors or recovered exceptions,
are rendered as ``{"error": "<message>"}``. Messages for internal failures are
generic and never include the underlying cause.
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors."""

    error: str = Field(
        ...,
        description="Human-readable error message",
        examples=["invalid user ID format", "user not found", "internal server error"],
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"error": "invalid limit parameter"},
                {"error": "user not found"},
                {"error": "internal server error"},
            ]
        }
    }

"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Correlation
REQUEST_ID_HEADER = "X-Request-ID"

# Pagination bounds enforced by the service layer
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100

# Range accepted for integer query parameters
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# Security and redaction
REDACTED = "[REDACTED]"

"""API-related constants."""

# HTTP Status Codes
HTTP_500_INTERNAL_SERVER_ERROR = 500

# Error message returned for internal failures and recovered exceptions
INTERNAL_ERROR_MESSAGE = "internal server error"

# Cross-origin policy
CORS_ALLOW_ORIGIN = "*"
CORS_ALLOW_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
CORS_ALLOW_HEADERS = ("Content-Type", "X-Request-ID")
CORS_MAX_AGE = 3600  # seconds

# Prefix for versioned resource routes
API_V1_PREFIX = "/api/v1"

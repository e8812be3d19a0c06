"""
Error codes carried by every ParleyError and returned in error bodies.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Stable, client-visible error identifiers, prefixed by category."""

    # Caller identity
    AUTH_MISSING = "AUTH_MISSING"
    AUTH_INVALID_TOKEN = "AUTH_INVALID_TOKEN"

    # Request input
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_VALUE = "VALIDATION_INVALID_VALUE"
    VALIDATION_UNKNOWN_MODEL = "VALIDATION_UNKNOWN_MODEL"

    # Missing resources
    NOT_FOUND_SESSION = "NOT_FOUND_SESSION"

    # Model provider
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_STREAM_FAILED = "LLM_STREAM_FAILED"

    # Web search and other HTTP dependencies
    EXTERNAL_SEARCH_FAILED = "EXTERNAL_SEARCH_FAILED"
    EXTERNAL_SEARCH_DEGRADED = "EXTERNAL_SEARCH_DEGRADED"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Session store
    PERSISTENCE_WRITE_FAILED = "PERSISTENCE_WRITE_FAILED"
    PERSISTENCE_READ_FAILED = "PERSISTENCE_READ_FAILED"

    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"

"""
Parley errors: codes, exception types, result dicts and FastAPI handlers.

Request-level failures (auth, validation, missing session) are raised as
ParleyError subclasses and rendered by register_exception_handlers().
Collaborators that must not fail a turn (web search) are wrapped with
handle_async_tool_errors() and return error_response() dicts instead.
"""

from .codes import ErrorCode
from .exceptions import (
    ParleyError,
    UnauthorizedError,
    ValidationError,
    NotFoundError,
    SessionNotFoundError,
    LLMError,
    StreamError,
    ExternalServiceError,
    SearchDegradedError,
    PersistenceError,
)
from .response import (
    error_response,
    success_response,
)
from .handlers import (
    handle_async_tool_errors,
    log_error,
    register_exception_handlers,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "ParleyError",
    "UnauthorizedError",
    "ValidationError",
    "NotFoundError",
    "SessionNotFoundError",
    "LLMError",
    "StreamError",
    "ExternalServiceError",
    "SearchDegradedError",
    "PersistenceError",
    # Response builders
    "error_response",
    "success_response",
    # Decorators / handlers
    "handle_async_tool_errors",
    "log_error",
    "register_exception_handlers",
]

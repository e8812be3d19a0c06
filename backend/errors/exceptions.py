"""
Parley exception hierarchy.

Every error carries an ErrorCode, a user-facing message, optional details,
whether the caller can fix it by retrying or changing input (recoverable),
the HTTP status used if it escapes a route, and free-form debugging context.
Subclasses pick a more specific code from their keyword arguments, e.g.
``ExternalServiceError(..., service="tavily")`` is EXTERNAL_SEARCH_FAILED.
"""

from typing import Any, Dict, Optional

from .codes import ErrorCode


def _drop_empty(context: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in context.items() if v is not None and v != ""}


class ParleyError(Exception):
    """Base exception for all Parley errors."""

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False
    http_status: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.context = _drop_empty(context) or None
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        return f"{self.message} - {self.details}" if self.details else self.message

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class UnauthorizedError(ParleyError):
    """No bearer token, or one that fails verification."""

    code = ErrorCode.AUTH_MISSING
    recoverable = True
    http_status = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[str] = None, invalid_token: bool = False, **context: Any):
        code = ErrorCode.AUTH_INVALID_TOKEN if invalid_token else ErrorCode.AUTH_MISSING
        super().__init__(message, details, code=code, **context)


class ValidationError(ParleyError):
    """Rejected request input: empty messages, unknown model, bad session id."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True
    http_status = 400

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        expected: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, details, parameter=parameter, expected=expected, received=received, **context)


class NotFoundError(ParleyError):
    code = ErrorCode.NOT_FOUND_SESSION
    recoverable = True
    http_status = 404

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **context: Any,
    ):
        super().__init__(message, details, resource_type=resource_type, resource_id=resource_id, **context)


class SessionNotFoundError(NotFoundError):
    """Unknown session id, or a session owned by someone else (indistinguishable to the caller)."""

    def __init__(self, session_id: str, details: Optional[str] = None, **context: Any):
        super().__init__("Session not found", details, resource_type="session", resource_id=session_id, **context)


class LLMError(ParleyError):
    code = ErrorCode.LLM_UNAVAILABLE
    http_status = 502

    def __init__(self, message: str, details: Optional[str] = None, model: Optional[str] = None, **context: Any):
        super().__init__(message, details, model=model, **context)


class StreamError(LLMError):
    """Model stream failed mid-turn. Ends the turn; the client sees a masked message."""

    code = ErrorCode.LLM_STREAM_FAILED


class ExternalServiceError(ParleyError):
    """A web search backend (or other HTTP dependency) failed."""

    code = ErrorCode.EXTERNAL_NETWORK_ERROR
    recoverable = True
    http_status = 502

    SEARCH_SERVICES = ("tavily", "searxng", "search")

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        if service in self.SEARCH_SERVICES:
            code = ErrorCode.EXTERNAL_SEARCH_FAILED
        else:
            code = ErrorCode.EXTERNAL_NETWORK_ERROR
        super().__init__(message, details, code=code, service=service, status_code=status_code or None, **context)


class SearchDegradedError(ExternalServiceError):
    """Search failed and the turn continues with an empty result set."""

    def __init__(
        self,
        message: str = "Search degraded to empty results",
        details: Optional[str] = None,
        service: Optional[str] = "search",
        **context: Any,
    ):
        super().__init__(message, details, service=service, **context)
        self.code = ErrorCode.EXTERNAL_SEARCH_DEGRADED


class PersistenceError(ParleyError):
    """Session store read or write failed."""

    code = ErrorCode.PERSISTENCE_WRITE_FAILED
    http_status = 500

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        operation: Optional[str] = None,
        session_id: Optional[str] = None,
        **context: Any,
    ):
        if operation == "read":
            code = ErrorCode.PERSISTENCE_READ_FAILED
        else:
            code = ErrorCode.PERSISTENCE_WRITE_FAILED
        super().__init__(message, details, code=code, operation=operation, session_id=session_id, **context)

"""
Result dictionaries for collaborator calls and HTTP error bodies.

Collaborators that must not raise (web search) return either
``success_response(...)`` or ``error_response(err)``; callers branch on
``result["success"]``. The same error shape is the JSON body of 4xx/5xx
responses.
"""

from typing import Any, Optional

from .codes import ErrorCode
from .exceptions import ParleyError


def error_response(error: ParleyError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Wrap an exception as ``{"success": False, "error": {...}}``.

    Args:
        error: ParleyError, or any exception (reported as INTERNAL_UNEXPECTED)
        tool: Collaborator name, e.g. "web_search"
        include_context: False for bodies sent to clients

    Example:
        >>> error_response(ExternalServiceError("Search service error", service="tavily"), tool="web_search")
        {"success": False, "error": {"code": "EXTERNAL_SEARCH_FAILED", "message": "Search service error", ...}}
    """
    if isinstance(error, ParleyError):
        body = error.to_dict()
        if not include_context:
            body["context"] = None
    else:
        body = {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "recoverable": False,
            "context": None,
        }
    body["tool"] = tool
    return {"success": False, "error": body}


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """``{"success": True, **data, **kwargs}``"""
    return {"success": True, **(data or {}), **kwargs}

"""
Turning exceptions into results, log lines and HTTP responses.
"""

import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .exceptions import ParleyError
from .response import error_response


def describe(error: Exception) -> str:
    """`CODE: message` for ParleyError, plain str() otherwise."""
    if isinstance(error, ParleyError):
        return f"{error.code.value}: {error.message}"
    return str(error)


def handle_async_tool_errors(tool_name: str, logger: Optional[logging.Logger] = None):
    """Make an async collaborator call total: any exception becomes an error_response.

    The traceback is logged on ``parley.<tool_name>`` (or `logger`), so the
    caller only has to check ``result["success"]``.

    Example:
        >>> @handle_async_tool_errors("web_search")
        ... async def search(query): ...
    """

    def decorator(func: Callable[..., Awaitable[dict]]) -> Callable[..., Awaitable[dict]]:
        log = logger or logging.getLogger(f"parley.{tool_name}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> dict:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                label = describe(e) if isinstance(e, ParleyError) else f"Unexpected error: {e}"
                log.error(f"[{tool_name}] {label}", exc_info=True)
                return error_response(e, tool=tool_name)

        return wrapper

    return decorator


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log `[context] CODE: message`, with the traceback by default."""
    prefix = f"[{context}] " if context else ""
    logger.error(prefix + describe(error), exc_info=include_traceback)


def register_exception_handlers(app: FastAPI) -> None:
    """Answer ParleyError with its http_status and an error_response body (no context)."""

    async def parley_error(request: Request, exc: ParleyError) -> JSONResponse:
        if exc.http_status >= 500:
            log_error(logging.getLogger("parley.http"), exc, context=request.url.path)
        return JSONResponse(status_code=exc.http_status, content=error_response(exc, include_context=False))

    app.add_exception_handler(ParleyError, parley_error)

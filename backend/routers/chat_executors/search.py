"""
Parley Chat Executors - Web Search

Web search via Tavily (hosted) or SearXNG (self-hosted). One attempt per
turn, bounded by search_timeout_s. Failures never raise: callers get the
standard {"success": False, "error": {...}} dict and continue without
search context.
"""

import logging
import re
from datetime import datetime, timezone
from html import unescape
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from config import RuntimeConfig
from errors import (
    handle_async_tool_errors,
    ExternalServiceError,
    success_response,
)

logger = logging.getLogger(__name__)

SNIPPET_MAX_CHARS = 300
MAX_RESULTS = 5
FAVICON_SERVICE = "https://favicon.im"


def build_search_query(question: str, today: Optional[datetime] = None) -> str:
    """Prefix the question with today's date so results favor recent pages."""
    today = today or datetime.now(timezone.utc)
    return f"today is {today.strftime('%Y-%m-%d')} \r\n {question}"


def icon_url_for(url: str) -> str:
    """Favicon URL for a result, or "" when the URL has no hostname."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return ""
    return f"{FAVICON_SERVICE}/{hostname}" if hostname else ""


def _strip_html(value: str) -> str:
    cleaned = re.sub(r"<[^>]+>", " ", value or "")
    cleaned = unescape(cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def _parse_results(items: Any, limit: int) -> List[Dict[str, str]]:
    """Normalize provider result items to {title, url, content}, ranked order kept."""
    if not isinstance(items, list):
        raise ValueError("results is not a list")

    results: List[Dict[str, str]] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        url = (item.get("url") or "").strip()
        if not url:
            continue
        results.append(
            {
                "title": _strip_html(item.get("title") or ""),
                "url": url,
                "content": _strip_html(item.get("content") or "")[:SNIPPET_MAX_CHARS],
            }
        )
        if len(results) >= limit:
            break
    return results


class WebSearchClient:
    """Async web search over a shared httpx client.

    Args:
        config: RuntimeConfig (provider, URLs, key, timeout, max results)
        http_client: Optional httpx.AsyncClient (tests inject a MockTransport)
    """

    def __init__(self, config: RuntimeConfig, http_client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(follow_redirects=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    @property
    def provider(self) -> str:
        return (self.config.search_provider or "tavily").lower()

    @handle_async_tool_errors("web_search")
    async def search(self, question: str) -> Dict[str, Any]:
        """
        Search the web for a user question.

        Args:
            question: The user's message text (date prefix is added here)

        Returns:
            success_response with "results" (at most search_max_results)
            or the error_response dict on any failure
        """
        query = build_search_query(question)
        limit = min(MAX_RESULTS, max(1, int(self.config.search_max_results or MAX_RESULTS)))
        provider = self.provider

        if provider == "searxng":
            data = await self._request_searxng(query)
        else:
            data = await self._request_tavily(query, limit)

        try:
            results = _parse_results(data.get("results", []), limit)
        except (AttributeError, ValueError) as exc:
            raise ExternalServiceError(
                "Search service returned a malformed response",
                details=str(exc),
                service=provider,
            )

        return success_response(query=query, provider=provider, results=results, result_count=len(results))

    async def _request_tavily(self, query: str, limit: int) -> Dict[str, Any]:
        if not self.config.tavily_api_key:
            raise ExternalServiceError(
                "Web search is not configured",
                details="Set TAVILY_API_KEY to enable Tavily search.",
                service="tavily",
                status_code=503,
            )

        payload = {
            "query": query,
            "max_results": limit,
            "exclude_domains": [],
            "api_key": self.config.tavily_api_key,
        }
        url = f"{self.config.tavily_url.rstrip('/')}/search"
        return await self._send("tavily", "POST", url, json=payload)

    async def _request_searxng(self, query: str) -> Dict[str, Any]:
        url = f"{self.config.searxng_url.rstrip('/')}/search"
        params = {"q": query, "format": "json", "categories": "general"}
        return await self._send("searxng", "GET", url, params=params)

    async def _send(self, service: str, method: str, url: str, **kwargs) -> Dict[str, Any]:
        timeout_s = float(self.config.search_timeout_s or 10.0)
        try:
            response = await self._http.request(method, url, timeout=timeout_s, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise ExternalServiceError(
                "Search service error",
                details=f"{service} returned status {status_code}",
                service=service,
                status_code=status_code,
            )
        except httpx.TimeoutException:
            raise ExternalServiceError(
                "Search service timed out",
                details=f"No response within {timeout_s:.0f}s",
                service=service,
            )
        except httpx.RequestError:
            raise ExternalServiceError(
                "Search service unavailable",
                details="Could not connect to the search service",
                service=service,
            )

        try:
            data = response.json()
        except ValueError:
            raise ExternalServiceError(
                "Search service returned a malformed response",
                details="Body is not valid JSON",
                service=service,
            )
        if not isinstance(data, dict):
            raise ExternalServiceError(
                "Search service returned a malformed response",
                details="Body is not a JSON object",
                service=service,
            )
        return data

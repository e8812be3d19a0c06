"""
Parley Chat Executors

External collaborators called during a chat turn. Each returns the standard
success/error response dict instead of raising.
"""

from .search import WebSearchClient, build_search_query, icon_url_for

__all__ = [
    "WebSearchClient",
    "build_search_query",
    "icon_url_for",
]

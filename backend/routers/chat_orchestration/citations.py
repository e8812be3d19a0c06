"""
Parley Citation Collector - Web search citations

Turns search results into the search_results annotation and resolves the
inline [n] markers the model writes back to those results.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Any, List

from routers.chat_executors.search import icon_url_for
from .session import ChatMessage, SearchResult, SearchResultsAnnotation

# [n] not already part of a markdown link label
CITATION_MARKER_RE = re.compile(r"(?<!\[)\[(\d{1,3})\](?!\()")


def build_search_annotation(results: List[Dict[str, Any]]) -> SearchResultsAnnotation:
    """Build the search_results annotation, keeping ranked order.

    Args:
        results: Normalized search results ({title, url, content})
    """
    return SearchResultsAnnotation(
        results=[
            SearchResult(
                title=r.get("title", ""),
                url=r.get("url", ""),
                snippet=r.get("content", ""),
                icon_url=icon_url_for(r.get("url", "")),
            )
            for r in results
        ]
    )


@dataclass
class CitationCollector:
    """Maps [n] markers 1:1 to the nth search result in arrival order."""

    results: List[SearchResult] = field(default_factory=list)

    def add_from_web_search(self, result: Dict[str, Any]) -> None:
        """Add results from a web search response.

        Args:
            result: Search response with 'success' and 'results'
        """
        if not result.get("success") or not result.get("results"):
            return
        self.results.extend(build_search_annotation(result["results"]).results)

    def resolve(self, text: str) -> List[SearchResult]:
        """Results cited in text, in first-citation order.

        Markers outside 1..len(results) are ignored; repeated markers
        are reported once.
        """
        cited: List[SearchResult] = []
        seen = set()
        for match in CITATION_MARKER_RE.finditer(text or ""):
            index = int(match.group(1))
            if index in seen or not 1 <= index <= len(self.results):
                continue
            seen.add(index)
            cited.append(self.results[index - 1])
        return cited

    def render(self, text: str) -> str:
        """Rewrite resolvable [n] markers as markdown links [[n]](url)."""

        def _link(match: "re.Match[str]") -> str:
            index = int(match.group(1))
            if not 1 <= index <= len(self.results):
                return match.group(0)
            return f"[[{index}]]({self.results[index - 1].url})"

        return CITATION_MARKER_RE.sub(_link, text or "")

    def __len__(self) -> int:
        return len(self.results)


def render_message_citations(message: ChatMessage) -> str:
    """Message content with [n] markers linked to its own search results."""
    annotation = next((a for a in message.annotations if isinstance(a, SearchResultsAnnotation)), None)
    if annotation is None or not annotation.results:
        return message.content
    return CitationCollector(results=list(annotation.results)).render(message.content)

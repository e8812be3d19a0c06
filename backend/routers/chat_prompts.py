"""
Parley Chat Prompts - System prompts

Contains:
- DEFAULT_SYSTEM_PROMPT: Used when search is off or returned nothing
- CITATION_RULES: Inline citation instructions for search-grounded answers
- build_search_prompt(): System prompt wrapping the question and search results
- select_system_prompt(): Pick between the two for a turn
"""

import json
from typing import Any, Dict, List

DEFAULT_SYSTEM_PROMPT = "you are a friendly assistant."

CITATION_RULES = """Please answer the question based on the reference materials.
## Citation Rules:
- Cite the reference materials at the end of sentences where appropriate.
- Use the citation number format [number] to reference a material in the matching part of your answer.
- If a sentence draws on several materials, list every relevant number, e.g. [1][2][3].
Do not group citations at the end; place them in the parts of the answer they support."""


def build_search_prompt(question: str, results: List[Dict[str, Any]]) -> str:
    """Build the system prompt for a search-grounded answer.

    Args:
        question: The user's message, included verbatim
        results: Search results ({title, url, content}) in ranked order

    Returns:
        Prompt text with the question and JSON-encoded results
    """
    payload = [
        {"title": r.get("title", ""), "url": r.get("url", ""), "content": r.get("content", "")}
        for r in results
    ]
    return (
        f"{CITATION_RULES}\n"
        f"## My question is: {question}\n"
        f"## Reference Materials: ```json {json.dumps(payload, ensure_ascii=False)} ```\n"
        f"Please respond in the same language as the user's question."
    )


def select_system_prompt(question: str, results: List[Dict[str, Any]]) -> str:
    """Search prompt when there are results, else the default prompt."""
    if results:
        return build_search_prompt(question, results)
    return DEFAULT_SYSTEM_PROMPT

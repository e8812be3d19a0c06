"""
LLM Client - Wraps the OpenAI SDK to stream from OpenAI-compatible providers.

Every provider in the model registry (Copilot, Groq, GitHub-hosted DeepSeek,
Google's OpenAI endpoint) speaks the chat completions protocol, so a single
async client type covers all of them.

Stream output:
    StreamDelta(kind="text", text="...")
    StreamDelta(kind="reasoning", text="...")
    StreamDelta(kind="usage", usage={"promptTokens": .., "completionTokens": ..})

Key translations:
- Reasoning: `reasoning_content` deltas → kind="reasoning"
- Reasoning: <think>...</think> inline tags → kind="reasoning" (when enabled)
- Options: max_tokens/temperature/top_p/stream_options passed through; `extra_body` forwarded
- Smoothing: smooth_lines() releases text one complete line at a time
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

_PASSTHROUGH_OPTIONS = ("temperature", "top_p", "max_tokens", "reasoning_effort", "stream_options", "extra_body")


@dataclass
class StreamDelta:
    """One increment of a model response."""

    kind: str  # "text" | "reasoning" | "usage"
    text: str = ""
    usage: Dict[str, int] = field(default_factory=dict)


class ThinkTagParser:
    """Splits streamed content into text and reasoning on <think> tags.

    Tags may arrive split across chunks, so a short tail is buffered until
    it can no longer be the start of a tag.
    """

    def __init__(self, start_in_think: bool = False):
        self.in_think = start_in_think
        self._buffer = ""

    def feed(self, chunk: str) -> List[StreamDelta]:
        out: List[StreamDelta] = []
        self._buffer += chunk

        while self._buffer:
            if self.in_think:
                close_idx = self._buffer.find(THINK_CLOSE)
                if close_idx >= 0:
                    thinking = self._buffer[:close_idx]
                    if thinking:
                        out.append(StreamDelta(kind="reasoning", text=thinking))
                    self._buffer = self._buffer[close_idx + len(THINK_CLOSE):]
                    self.in_think = False
                elif len(self._buffer) > len(THINK_CLOSE):
                    # No closing tag yet, emit buffered thinking (keep tail for partial match)
                    safe = self._buffer[: -(len(THINK_CLOSE) - 1)]
                    self._buffer = self._buffer[len(safe):]
                    out.append(StreamDelta(kind="reasoning", text=safe))
                else:
                    break
            else:
                open_idx = self._buffer.find(THINK_OPEN)
                if open_idx >= 0:
                    before = self._buffer[:open_idx]
                    if before:
                        out.append(StreamDelta(kind="text", text=before))
                    self._buffer = self._buffer[open_idx + len(THINK_OPEN):]
                    self.in_think = True
                elif len(self._buffer) > len(THINK_OPEN):
                    safe = self._buffer[: -(len(THINK_OPEN) - 1)]
                    self._buffer = self._buffer[len(safe):]
                    out.append(StreamDelta(kind="text", text=safe))
                else:
                    break

        return out

    def flush(self) -> List[StreamDelta]:
        if not self._buffer:
            return []
        kind = "reasoning" if self.in_think else "text"
        delta = StreamDelta(kind=kind, text=self._buffer)
        self._buffer = ""
        return [delta]


class LLMClient:
    """Async streaming client for one OpenAI-compatible provider."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 180.0,
        provider: str = "openai",
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            base_url: Provider base URL (e.g., "https://api.groq.com/openai/v1")
            api_key: Provider API key
            timeout: Request timeout in seconds
            provider: Provider name for logging
            openai_client: Preconfigured client (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self._openai = openai_client or AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key or "not-configured",
            timeout=timeout,
            max_retries=0,  # single attempt per turn
        )

    async def stream_chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        options: Optional[Dict[str, Any]] = None,
        extract_reasoning: bool = False,
        start_with_reasoning: bool = False,
    ) -> AsyncIterator[StreamDelta]:
        """Stream a chat completion as StreamDelta items.

        Closing this generator (aclose / cancellation) closes the upstream
        HTTP response, which stops token generation on the provider side.

        Args:
            model: Upstream model name
            messages: OpenAI-format messages, system prompt first
            options: Generation options (temperature, max_tokens, extra_body, ...)
            extract_reasoning: Split inline <think> tags into reasoning deltas
            start_with_reasoning: Treat the stream as starting inside <think>
        """
        options = options or {}
        kwargs: Dict[str, Any] = {"model": model, "messages": messages}
        for key in _PASSTHROUGH_OPTIONS:
            if options.get(key) is not None:
                kwargs[key] = options[key]

        parser = ThinkTagParser(start_in_think=start_with_reasoning) if extract_reasoning else None

        stream = await self._openai.chat.completions.create(stream=True, **kwargs)
        try:
            async for chunk in stream:
                usage = getattr(chunk, "usage", None)
                if usage is not None:
                    yield StreamDelta(
                        kind="usage",
                        usage={
                            "promptTokens": usage.prompt_tokens or 0,
                            "completionTokens": usage.completion_tokens or 0,
                        },
                    )

                delta = chunk.choices[0].delta if chunk.choices else None
                if not delta:
                    continue

                # DeepSeek / Groq expose reasoning as a separate delta field
                reasoning_chunk = getattr(delta, "reasoning_content", None) or getattr(delta, "reasoning", None)
                if reasoning_chunk:
                    yield StreamDelta(kind="reasoning", text=reasoning_chunk)

                content_chunk = delta.content or ""
                if not content_chunk:
                    continue

                if parser is None:
                    yield StreamDelta(kind="text", text=content_chunk)
                    continue
                for item in parser.feed(content_chunk):
                    yield item

            if parser is not None:
                for item in parser.flush():
                    yield item
        finally:
            await stream.close()


async def smooth_lines(deltas: AsyncIterator[StreamDelta], delay_ms: int = 10) -> AsyncIterator[StreamDelta]:
    """Buffer text deltas and release them one complete line at a time.

    Reasoning and usage deltas pass through immediately, after any buffered
    text, so relative order is kept. The trailing partial line is released
    when the source ends.

    Args:
        deltas: Source delta stream
        delay_ms: Pause after each released line
    """
    buffer = ""
    delay = max(0, delay_ms) / 1000.0

    async for delta in deltas:
        if delta.kind != "text":
            if buffer:
                yield StreamDelta(kind="text", text=buffer)
                buffer = ""
            yield delta
            continue

        buffer += delta.text
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            yield StreamDelta(kind="text", text=line + "\n")
            if delay:
                await asyncio.sleep(delay)

    if buffer:
        yield StreamDelta(kind="text", text=buffer)

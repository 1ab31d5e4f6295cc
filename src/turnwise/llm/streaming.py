"""Streaming generation primitive."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from turnwise.llm.message import Message, TextPart, ThinkingPart, TokenUsage
from turnwise.llm.provider import ChatProvider

logger = logging.getLogger(__name__)

OnToken = Callable[[str], None] | None
OnThinking = Callable[[str], None] | None


@dataclass
class GenerateResult:
    """Result of a single LLM generation."""

    message: Message
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None

    @property
    def text(self) -> str:
        return self.message.text

    @property
    def truncated(self) -> bool:
        """The model stopped because it ran out of output tokens."""
        return self.finish_reason == "length"


async def generate(
    provider: ChatProvider,
    system: str,
    messages: list[Message],
    on_token: OnToken = None,
    on_thinking: OnThinking = None,
) -> GenerateResult:
    """Stream one LLM response, reporting text chunks as they arrive.

    Only the accumulated text is returned for parsing; the callbacks are
    a side channel for progress display.
    """
    api_messages = [m.to_openai_dict() for m in messages]

    text_buffer = ""
    thinking_buffer = ""
    usage = TokenUsage()
    finish_reason = None

    async for chunk in provider.stream(system, api_messages):
        fr = chunk.get("finish_reason")
        if fr:
            finish_reason = fr

        delta = chunk.get("delta", {})

        reasoning = delta.get("reasoning_content")
        if reasoning:
            thinking_buffer += reasoning
            if on_thinking:
                on_thinking(reasoning)
                await asyncio.sleep(0)

        content = delta.get("content")
        if content:
            text_buffer += content
            if on_token:
                on_token(content)
                # Yield so wire consumers see tokens while the stream runs.
                await asyncio.sleep(0)

        if "usage" in chunk:
            u = chunk["usage"]
            usage = TokenUsage(
                input_tokens=u.get("prompt_tokens", 0),
                output_tokens=u.get("completion_tokens", 0),
                total_tokens=u.get("total_tokens", 0),
            )

    parts: list[TextPart | ThinkingPart] = []
    if thinking_buffer:
        parts.append(ThinkingPart(thinking=thinking_buffer))
    if text_buffer:
        parts.append(TextPart(text=text_buffer))

    if finish_reason == "length":
        logger.warning("Model output was cut off at max_tokens")

    message = Message(role="assistant", parts=parts)
    return GenerateResult(message=message, usage=usage, finish_reason=finish_reason)


async def complete_text(
    provider: ChatProvider,
    system: str,
    prompt: str,
) -> str:
    """Run a single non-interactive completion and return its text."""
    result = await generate(provider, system, [Message.user(prompt)])
    return result.text

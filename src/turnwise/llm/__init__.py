"""LLM abstraction layer: unified via litellm with streaming."""

from turnwise.llm.message import (
    ContentPart,
    Message,
    TextPart,
    ThinkingPart,
    TokenUsage,
)
from turnwise.llm.provider import (
    ChatProvider,
    LiteLLMProvider,
    ProviderConfig,
    create_provider,
)
from turnwise.llm.streaming import GenerateResult, complete_text, generate

__all__ = [
    "ContentPart",
    "Message",
    "TextPart",
    "ThinkingPart",
    "TokenUsage",
    "ChatProvider",
    "LiteLLMProvider",
    "ProviderConfig",
    "create_provider",
    "GenerateResult",
    "complete_text",
    "generate",
]

"""Message types for the LLM abstraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass
class TextPart:
    """A text content part."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ThinkingPart:
    """Provider-side reasoning content (extended thinking, DeepSeek reasoning).

    Distinct from the ``<thinking>`` tags the oracle writes into its text
    reply; those are handled by the response parser.
    """

    type: Literal["thinking"] = "thinking"
    thinking: str = ""


ContentPart = TextPart | ThinkingPart


@dataclass
class TokenUsage:
    """Token usage stats from an LLM call."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Message:
    """A chat message with typed content parts."""

    role: Literal["system", "user", "assistant"]
    parts: list[ContentPart] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Get concatenated text content."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def thinking(self) -> str:
        return "".join(p.thinking for p in self.parts if isinstance(p, ThinkingPart))

    # --- Convenience constructors ---

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", parts=[TextPart(text=text)])

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", parts=[TextPart(text=text)])

    @classmethod
    def assistant(cls, text: str = "") -> Message:
        return cls(role="assistant", parts=[TextPart(text=text)] if text else [])

    @classmethod
    def from_history(cls, entry: dict[str, Any]) -> Message:
        """Build a message from a stored chat-history entry.

        Entries use ``{"role": "user"|"assistant"|"model", "content"|"text": str}``;
        the ``model`` role is an alias for ``assistant``.
        """
        role = entry.get("role", "user")
        if role == "model":
            role = "assistant"
        if role not in ("system", "user", "assistant"):
            role = "user"
        text = entry.get("content")
        if text is None:
            text = entry.get("text", "")
        return cls(role=role, parts=[TextPart(text=str(text))])

    def to_openai_dict(self) -> dict[str, Any]:
        """Convert to OpenAI API format."""
        return {"role": self.role, "content": self.text}

"""Chat providers for the oracle and the code generators.

Every call goes through litellm, which picks the backend from the model
prefix ("anthropic/...", "openai/...", "gemini/...") and reads API keys
from the environment. Streams are reduced to a small chunk dict so the
rest of the engine never touches litellm types:

    {"id": str,
     "finish_reason": str | None,
     "delta": {"content"?: str, "role"?: str, "reasoning_content"?: str},
     "usage"?: {"prompt_tokens": int, "completion_tokens": int, "total_tokens": int}}

The oracle selects tools with a JSON block inside plain text, so no
native function-calling specs are sent.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from litellm import CustomStreamWrapper, ModelResponseStream

logger = logging.getLogger(__name__)

# litellm exception classes worth another attempt; matched by name so the
# module imports without litellm loaded.
_TRANSIENT_ERROR_NAMES = frozenset(
    {
        "APIConnectionError",
        "Timeout",
        "RateLimitError",
        "ServiceUnavailableError",
        "InternalServerError",
        "BadGatewayError",
    }
)


@dataclass
class ProviderConfig:
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    reasoning_effort: str | None = None  # "low", "medium" or "high"
    request_timeout: float | None = None
    max_attempts: int = 3


@runtime_checkable
class ChatProvider(Protocol):
    @property
    def config(self) -> ProviderConfig: ...

    def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream one completion as normalized chunk dicts."""
        ...


def is_transient_error(exc: BaseException) -> bool:
    """Network drops, timeouts, rate limits and 5xx responses."""
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return True
    return any(cls.__name__ in _TRANSIENT_ERROR_NAMES for cls in type(exc).__mro__)


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    _config: ProviderConfig

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
    ) -> AsyncIterator[dict[str, Any]]:
        response = await self._open_stream(self.request_kwargs(system, messages))
        async for chunk in response:  # type: ignore[union-attr]
            yield normalize_chunk(chunk)

    def request_kwargs(self, system: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
        """Arguments for ``litellm.acompletion``; unset options are left out."""
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": [{"role": "system", "content": system}, *messages],
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        optional = {
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
            "reasoning_effort": self._config.reasoning_effort or None,
            "timeout": self._config.request_timeout,
        }
        kwargs.update({k: v for k, v in optional.items() if v is not None})
        return kwargs

    async def _open_stream(self, kwargs: dict[str, Any]) -> CustomStreamWrapper:
        """Start the completion, retrying transient failures.

        Only opening the stream is retried; a stream that breaks halfway
        is reported to the caller.
        """
        import litellm

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self._config.max_attempts)),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            retry=retry_if_exception(is_transient_error),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await litellm.acompletion(**kwargs)
        raise AssertionError("unreachable")  # pragma: no cover


def normalize_chunk(chunk: ModelResponseStream) -> dict[str, Any]:
    choices = getattr(chunk, "choices", None) or []
    normalized: dict[str, Any] = {
        "id": getattr(chunk, "id", ""),
        "finish_reason": choices[0].finish_reason if choices else None,
        "delta": {},
    }

    if choices:
        delta = choices[0].delta
        for key in ("content", "role", "reasoning_content"):
            value = getattr(delta, key, None)
            if value is not None:
                normalized["delta"][key] = value

    usage = getattr(chunk, "usage", None)
    if usage:
        normalized["usage"] = {
            key: getattr(usage, key, 0) or 0
            for key in ("prompt_tokens", "completion_tokens", "total_tokens")
        }
    return normalized


def create_provider(
    model: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    reasoning_effort: str | None = None,
    request_timeout: float | None = None,
    max_attempts: int = 3,
) -> ChatProvider:
    """Build a litellm-backed provider.

    Args:
        model: Model name with provider prefix, e.g. "openai/gpt-4o".
        temperature: Sampling temperature; provider default when None.
        max_tokens: Output token cap; provider default when None.
        reasoning_effort: "low", "medium" or "high"; None disables it.
        request_timeout: Seconds litellm waits for the backend.
        max_attempts: Tries for opening a stream on transient errors.
    """
    return LiteLLMProvider(
        _config=ProviderConfig(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            reasoning_effort=reasoning_effort,
            request_timeout=request_timeout,
            max_attempts=max_attempts,
        )
    )

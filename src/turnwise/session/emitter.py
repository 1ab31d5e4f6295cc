"""Event emitters: the narrow progress interface the turn loop calls.

Delivery is best-effort and purely observational: an emitter that fails
must never change the outcome of a turn, so ``WireEmitter`` logs and drops
transport errors instead of raising them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from turnwise.errors import ErrorCode
from turnwise.session.wire import EventType, Wire, WireEvent

logger = logging.getLogger(__name__)

# Arguments carrying code are replaced before they leave the engine.
REDACTED_ARGS = frozenset({"code", "report_code"})
CODE_PLACEHOLDER = "[code omitted]"


@runtime_checkable
class EventEmitter(Protocol):
    def turn_begin(self, query: str) -> None: ...

    def turn_end(self, status: str) -> None: ...

    def thinking_started(self) -> None: ...

    def token(self, text: str) -> None: ...

    def explanation(self, text: str) -> None: ...

    def tool_started(self, name: str, args: dict[str, Any]) -> None: ...

    def tool_finished(
        self,
        name: str,
        summary: str,
        error: str | None = None,
        error_code: ErrorCode | None = None,
    ) -> None: ...

    def final_answer(self, text: str, artifacts: dict[str, Any] | None = None) -> None: ...

    def clarification_needed(self, question: str) -> None: ...

    def error(self, message: str, code: ErrorCode) -> None: ...


def redact_args(args: dict[str, Any]) -> dict[str, Any]:
    return {k: (CODE_PLACEHOLDER if k in REDACTED_ARGS else v) for k, v in args.items()}


@dataclass
class WireEmitter:
    """Publishes turn events onto a ``Wire``, tagged with correlation ids."""

    wire: Wire
    correlation_id: str = ""
    user_id: str | None = None
    session_id: str | None = None

    def _send(self, event_type: EventType, **data: Any) -> None:
        if self.user_id is not None:
            data.setdefault("user_id", self.user_id)
        if self.session_id is not None:
            data.setdefault("session_id", self.session_id)
        try:
            self.wire.send(
                WireEvent(type=event_type, data=data, correlation_id=self.correlation_id)
            )
        except Exception as e:
            logger.warning(
                "[%s] Dropped %s event: %s", self.correlation_id, event_type.value, e
            )

    def turn_begin(self, query: str) -> None:
        self._send(EventType.TURN_BEGIN, query=query)

    def turn_end(self, status: str) -> None:
        self._send(EventType.TURN_END, status=status)

    def thinking_started(self) -> None:
        self._send(EventType.THINKING_STARTED)

    def token(self, text: str) -> None:
        if not text or not text.strip():
            return
        self._send(EventType.TOKEN, text=text)

    def explanation(self, text: str) -> None:
        self._send(EventType.EXPLANATION, text=text)

    def tool_started(self, name: str, args: dict[str, Any]) -> None:
        self._send(EventType.TOOL_STARTED, name=name, args=redact_args(args))

    def tool_finished(
        self,
        name: str,
        summary: str,
        error: str | None = None,
        error_code: ErrorCode | None = None,
    ) -> None:
        self._send(
            EventType.TOOL_FINISHED,
            name=name,
            summary=summary,
            error=error,
            error_code=error_code.value if error_code else None,
        )

    def final_answer(self, text: str, artifacts: dict[str, Any] | None = None) -> None:
        self._send(EventType.FINAL_ANSWER, text=text, artifacts=artifacts or {})

    def clarification_needed(self, question: str) -> None:
        self._send(EventType.CLARIFICATION_NEEDED, question=question)

    def error(self, message: str, code: ErrorCode) -> None:
        self._send(EventType.ERROR, message=message, code=code.value)


class NullEmitter:
    """Emitter that discards every event."""

    def turn_begin(self, query: str) -> None:
        pass

    def turn_end(self, status: str) -> None:
        pass

    def thinking_started(self) -> None:
        pass

    def token(self, text: str) -> None:
        pass

    def explanation(self, text: str) -> None:
        pass

    def tool_started(self, name: str, args: dict[str, Any]) -> None:
        pass

    def tool_finished(
        self,
        name: str,
        summary: str,
        error: str | None = None,
        error_code: ErrorCode | None = None,
    ) -> None:
        pass

    def final_answer(self, text: str, artifacts: dict[str, Any] | None = None) -> None:
        pass

    def clarification_needed(self, question: str) -> None:
        pass

    def error(self, message: str, code: ErrorCode) -> None:
        pass


class GuardedEmitter:
    """Wraps any emitter so a failing event call is logged instead of raised."""

    def __init__(self, inner: EventEmitter) -> None:
        self._inner = inner

    @classmethod
    def wrap(cls, emitter: EventEmitter) -> GuardedEmitter:
        """Guard ``emitter`` unless it already is guarded."""
        return emitter if isinstance(emitter, cls) else cls(emitter)

    def __getattr__(self, name: str) -> Any:
        target = getattr(self._inner, name)
        if not callable(target):
            return target

        def _guarded(*args: Any, **kwargs: Any) -> None:
            try:
                target(*args, **kwargs)
            except Exception:
                logger.warning("Emitter %s.%s failed", type(self._inner).__name__, name, exc_info=True)

        return _guarded

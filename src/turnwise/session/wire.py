"""Event bus between a running turn and whoever is watching it.

Producers never block: every subscriber has its own queue, and a slow
subscriber with a bounded queue loses its oldest events rather than
stalling the turn. Sequence numbers let a client notice such gaps.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class EventType(enum.Enum):
    TURN_BEGIN = "turn_begin"
    TURN_END = "turn_end"
    THINKING_STARTED = "thinking_started"
    TOKEN = "token"
    EXPLANATION = "explanation"
    TOOL_STARTED = "tool_started"
    TOOL_FINISHED = "tool_finished"
    FINAL_ANSWER = "final_answer"
    CLARIFICATION_NEEDED = "clarification_needed"
    ERROR = "error"


@dataclass
class WireEvent:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    correlation_id: str = ""
    seq: int = 0  # Assigned by the wire on send

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form for socket or SSE bridges."""
        return {
            "type": self.type.value,
            "seq": self.seq,
            "correlationId": self.correlation_id,
            "data": self.data,
        }


class Wire:
    """Broadcasts events from one turn to any number of subscribers."""

    def __init__(self, maxsize: int = 0) -> None:
        self._maxsize = maxsize
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed = False
        self._seq = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        queue: asyncio.Queue[WireEvent | None] = asyncio.Queue(self._maxsize)
        if self._closed:
            queue.put_nowait(None)
        else:
            self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[WireEvent | None]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def send(self, event: WireEvent) -> None:
        """Number the event and hand it to every subscriber. No-op once closed."""
        if self._closed:
            return
        self._seq += 1
        event.seq = self._seq
        for queue in self._subscribers:
            self._offer(queue, event)

    def close(self) -> None:
        """End every subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for queue in self._subscribers:
            self._offer(queue, None)

    def _offer(self, queue: asyncio.Queue[WireEvent | None], item: WireEvent | None) -> None:
        if queue.full():
            dropped = queue.get_nowait()
            logger.debug("Subscriber queue full, dropped event %s", getattr(dropped, "seq", None))
        queue.put_nowait(item)

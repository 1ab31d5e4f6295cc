"""Actions the oracle can ask for."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from turnwise.errors import ErrorCode

# Reserved action names. They select an Action variant and are never tools.
ANSWER_TOOL = "_answerUserTool"
CLARIFY_TOOL = "ask_user_for_clarification"
RESERVED_NAMES: frozenset[str] = frozenset({ANSWER_TOOL, CLARIFY_TOOL})

# Step name recorded when the iteration budget runs out.
MAX_ITERATIONS_STEP = "_maxIterations"


@dataclass(frozen=True)
class ToolCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    thinking: str | None = None
    explanation: str | None = None


@dataclass(frozen=True)
class FinalAnswer:
    text: str
    thinking: str | None = None
    explanation: str | None = None


@dataclass(frozen=True)
class ClarificationRequest:
    question: str
    thinking: str | None = None
    explanation: str | None = None


@dataclass(frozen=True)
class OracleFailure:
    """The oracle could not be reached. Produced by the adapter only."""

    message: str
    code: ErrorCode = ErrorCode.ORACLE_UNAVAILABLE


Action = ToolCall | FinalAnswer | ClarificationRequest
OracleReply = Action | OracleFailure

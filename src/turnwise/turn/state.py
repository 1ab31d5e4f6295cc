"""Turn state: everything one user request accumulates while it runs.

Steps are recorded as an append-only event log. The ``steps`` view is
rebuilt from the log, so a step is always addressed by its id and never
by searching for "the last step with this tool name".
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from turnwise.errors import ErrorCode, user_message
from turnwise.llm.message import Message
from turnwise.turn.artifacts import PREVIOUS_ANALYSIS_RESULT, PREVIOUS_REPORT_CODE, ArtifactStore

logger = logging.getLogger(__name__)


class TurnStatus(enum.Enum):
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Step events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepStarted:
    step_id: int
    tool: str
    args: dict[str, Any]


@dataclass(frozen=True)
class StepRetried:
    step_id: int
    attempt: int


@dataclass(frozen=True)
class StepFinished:
    step_id: int
    result_summary: str
    error: str | None = None
    error_code: ErrorCode | None = None
    observation: str = ""  # Result as formatted for the oracle


StepEvent = StepStarted | StepRetried | StepFinished


@dataclass
class Step:
    """Projection of one attempted action."""

    id: int
    tool: str
    args: dict[str, Any]
    attempt: int = 1
    result_summary: str = ""
    error: str | None = None
    error_code: ErrorCode | None = None
    observation: str = ""
    finished: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "args": self.args,
            "attempt": self.attempt,
            "resultSummary": self.result_summary,
            "error": self.error,
            "errorCode": self.error_code.value if self.error_code else None,
        }


@dataclass
class TurnError:
    code: ErrorCode
    message: str  # Internal detail, logged and persisted, never shown raw

    @property
    def user_message(self) -> str:
        return user_message(self.code)


# ---------------------------------------------------------------------------
# TurnContext
# ---------------------------------------------------------------------------


class TurnContext:
    """Mutable state of one turn, owned by the orchestration loop."""

    def __init__(
        self,
        original_query: str,
        *,
        history: list[Message] | None = None,
        artifacts: ArtifactStore | None = None,
        user_context: str | None = None,
        team_context: str | None = None,
    ) -> None:
        self.original_query = original_query
        self.history: list[Message] = list(history or [])
        self.artifacts = artifacts if artifacts is not None else ArtifactStore()
        self.user_context = user_context
        self.team_context = team_context

        self.events: list[StepEvent] = []
        self.tool_error_counts: dict[str, int] = {}
        self.final_answer: str | None = None
        self.error: TurnError | None = None
        self.status = TurnStatus.RUNNING
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: datetime | None = None
        self._next_step_id = 1
        self._attempts: dict[int, int] = {}

    # --- Step log ---

    def begin_step(self, tool: str, args: dict[str, Any] | None = None) -> int:
        """Record a new step and return its id."""
        step_id = self._next_step_id
        self._next_step_id += 1
        self._attempts[step_id] = 1
        self.events.append(StepStarted(step_id=step_id, tool=tool, args=dict(args or {})))
        return step_id

    def retry_step(self, step_id: int) -> int:
        """Record another attempt of the same step; returns the new attempt number."""
        if step_id not in self._attempts:
            raise KeyError(f"Unknown step: {step_id}")
        attempt = self._attempts[step_id] + 1
        self._attempts[step_id] = attempt
        self.events.append(StepRetried(step_id=step_id, attempt=attempt))
        return attempt

    def finish_step(
        self,
        step_id: int,
        result_summary: str,
        error: str | None = None,
        error_code: ErrorCode | None = None,
        observation: str = "",
    ) -> None:
        if step_id not in self._attempts:
            raise KeyError(f"Unknown step: {step_id}")
        self.events.append(
            StepFinished(
                step_id=step_id,
                result_summary=result_summary,
                error=error,
                error_code=error_code,
                observation=observation,
            )
        )

    @property
    def steps(self) -> list[Step]:
        """Current view of every step, in the order they were started."""
        by_id: dict[int, Step] = {}
        for event in self.events:
            if isinstance(event, StepStarted):
                by_id[event.step_id] = Step(id=event.step_id, tool=event.tool, args=event.args)
            elif isinstance(event, StepRetried):
                by_id[event.step_id].attempt = event.attempt
            else:
                step = by_id[event.step_id]
                step.result_summary = event.result_summary
                step.error = event.error
                step.error_code = event.error_code
                step.observation = event.observation
                step.finished = True
        return list(by_id.values())

    def step(self, step_id: int) -> Step:
        for s in self.steps:
            if s.id == step_id:
                return s
        raise KeyError(f"Unknown step: {step_id}")

    def increment_tool_error(self, tool: str) -> int:
        count = self.tool_error_counts.get(tool, 0) + 1
        self.tool_error_counts[tool] = count
        return count

    # --- Terminal transitions ---

    def set_final_answer(self, text: str) -> None:
        self._finish(TurnStatus.COMPLETED)
        self.final_answer = text

    def request_clarification(self, question: str) -> None:
        self._finish(TurnStatus.AWAITING_INPUT)
        self.final_answer = question

    def fail(self, code: ErrorCode, message: str) -> None:
        self._finish(TurnStatus.ERROR)
        self.error = TurnError(code=code, message=message)

    @property
    def is_finished(self) -> bool:
        return self.status is not TurnStatus.RUNNING

    def _finish(self, status: TurnStatus) -> None:
        if self.is_finished:
            raise RuntimeError(
                f"Turn already finished with status {self.status.value}; "
                f"cannot move to {status.value}"
            )
        self.status = status
        self.finished_at = datetime.now(timezone.utc)

    # --- Views ---

    @property
    def response_text(self) -> str | None:
        """What the user sees: the answer or question, else the error message."""
        if self.final_answer is not None:
            return self.final_answer
        if self.error is not None:
            return self.error.user_message
        return None

    def to_record(self) -> dict[str, Any]:
        """Snapshot persisted once the turn ends."""
        return {
            "status": self.status.value,
            "originalQuery": self.original_query,
            "steps": [s.to_dict() for s in self.steps],
            "aiResponseText": self.response_text,
            "errorMessage": self.error.message if self.error else None,
            "errorCode": self.error.code.value if self.error else None,
            "aiGeneratedCode": self.artifacts.report_code,
            "reportAnalysisData": self.artifacts.analysis_result,
            "toolErrorCounts": dict(self.tool_error_counts),
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.finished_at.isoformat() if self.finished_at else None,
        }

    def context_for_oracle(self) -> dict[str, Any]:
        """State the prompt assembler needs for the next reasoning call."""
        return {
            "original_query": self.original_query,
            "history": list(self.history),
            "steps": self.steps,
            "analysis_result": self.artifacts.analysis_result,
            "previous_analysis_result": self.artifacts.get(PREVIOUS_ANALYSIS_RESULT),
            "has_previous_report_code": self.artifacts.get(PREVIOUS_REPORT_CODE) is not None,
            "dataset_schemas": self.artifacts.dataset_schemas,
            "dataset_samples": self.artifacts.dataset_samples,
            "user_context": self.user_context,
            "team_context": self.team_context,
        }

"""Test doubles shared across the suite."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from turnwise.datasets import DatasetInfo, DatasetNotFound, infer_columns, parse_csv
from turnwise.errors import ErrorCode
from turnwise.llm.provider import ProviderConfig
from turnwise.sandbox import SandboxResult


def action(tool: str, **args: Any) -> str:
    """An oracle reply selecting ``tool`` with ``args``."""
    payload = json.dumps({"tool": tool, "args": args})
    return f"<thinking>calling {tool}</thinking>\n```json\n{payload}\n```"


def answer(text: str) -> str:
    return action("_answerUserTool", textResponse=text)


class ScriptedProvider:
    """ChatProvider that replays canned replies, one per call.

    Once the script runs out the last reply repeats. Entries that are
    exceptions are raised instead of streamed.
    """

    def __init__(self, replies: list[str | BaseException], chunk_size: int = 0) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self.chunk_size = chunk_size
        self._config = ProviderConfig(model="fake/model")

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def stream(
        self, system: str, messages: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        self.calls.append((system, messages))
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, BaseException):
            raise reply

        size = self.chunk_size or max(len(reply), 1)
        for start in range(0, len(reply), size):
            yield {"id": "c", "finish_reason": None, "delta": {"content": reply[start : start + size]}}
        yield {
            "id": "c",
            "finish_reason": "stop",
            "delta": {},
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
        }


class RecordingEmitter:
    """Keeps every event as ``(name, args)``."""

    def __init__(self) -> None:
        self.events: list[tuple[str, tuple[Any, ...]]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list[tuple[Any, ...]]:
        return [args for n, args in self.events if n == name]

    def _record(self, name: str, *args: Any) -> None:
        self.events.append((name, args))

    def turn_begin(self, query: str) -> None:
        self._record("turn_begin", query)

    def turn_end(self, status: str) -> None:
        self._record("turn_end", status)

    def thinking_started(self) -> None:
        self._record("thinking_started")

    def token(self, text: str) -> None:
        self._record("token", text)

    def explanation(self, text: str) -> None:
        self._record("explanation", text)

    def tool_started(self, name: str, args: dict[str, Any]) -> None:
        self._record("tool_started", name, args)

    def tool_finished(
        self,
        name: str,
        summary: str,
        error: str | None = None,
        error_code: ErrorCode | None = None,
    ) -> None:
        self._record("tool_finished", name, summary, error, error_code)

    def final_answer(self, text: str, artifacts: dict[str, Any] | None = None) -> None:
        self._record("final_answer", text, artifacts)

    def clarification_needed(self, question: str) -> None:
        self._record("clarification_needed", question)

    def error(self, message: str, code: ErrorCode) -> None:
        self._record("error", message, code)


class ExplodingEmitter(RecordingEmitter):
    """Records, then raises on every event."""

    def _record(self, name: str, *args: Any) -> None:
        super()._record(name, *args)
        raise RuntimeError(f"transport down during {name}")


class FakeDatasets:
    """DatasetService over in-memory CSV text."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = files

    async def list_datasets(self) -> list[DatasetInfo]:
        return [DatasetInfo(id=k, name=k.title()) for k in self.files]

    async def read_text(self, dataset_id: str) -> str:
        if dataset_id not in self.files:
            raise DatasetNotFound(f"Dataset not found: {dataset_id}")
        return self.files[dataset_id]

    async def get_schema(self, dataset_id: str) -> dict[str, Any]:
        rows = parse_csv(await self.read_text(dataset_id))
        return {"name": dataset_id, "description": "", "columns": infer_columns(rows), "row_count": len(rows)}

    async def get_sample(self, dataset_id: str, limit: int = 5) -> dict[str, Any]:
        rows = parse_csv(await self.read_text(dataset_id))
        return {"rows": rows[:limit], "total_rows": len(rows)}


class FakeSandbox:
    """CodeSandbox returning queued outcomes; the last one repeats."""

    def __init__(self, outcomes: list[SandboxResult]) -> None:
        self.outcomes = outcomes
        self.runs: list[tuple[str, Any]] = []

    async def run(self, code: str, input_data: Any, timeout: float) -> SandboxResult:
        self.runs.append((code, input_data))
        return self.outcomes[min(len(self.runs) - 1, len(self.outcomes) - 1)]


class FakeGenerator:
    """Code generator returning numbered snippets."""

    def __init__(self, fail_after: int | None = None, report_code: str = "function ReportComponent() {}") -> None:
        self.analysis_calls: list[tuple[str, str | None]] = []
        self.report_calls: list[Any] = []
        self.fail_after = fail_after
        self.report_code = report_code

    async def generate_analysis_code(
        self, goal: str, schema: dict[str, Any] | None, previous_error: str | None = None
    ) -> str:
        self.analysis_calls.append((goal, previous_error))
        if self.fail_after is not None and len(self.analysis_calls) > self.fail_after:
            raise ConnectionError("model unreachable")
        return f"send_result({len(self.analysis_calls)})"

    async def generate_report_code(self, summary: str, analysis_data: Any, **kwargs: Any) -> str:
        self.report_calls.append(analysis_data)
        return self.report_code

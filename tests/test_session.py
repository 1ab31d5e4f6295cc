"""Tests for turnwise.session.emitter and turnwise.session.store."""

from __future__ import annotations

import json
from pathlib import Path

from fakes import ExplodingEmitter, RecordingEmitter

from turnwise.errors import ErrorCode
from turnwise.session.emitter import (
    CODE_PLACEHOLDER,
    EventEmitter,
    GuardedEmitter,
    NullEmitter,
    WireEmitter,
    redact_args,
)
from turnwise.session.store import JsonlTurnStore, MemoryTurnStore, TurnStore
from turnwise.session.wire import EventType, Wire, WireEvent


# ---------------------------------------------------------------------------
# WireEmitter
# ---------------------------------------------------------------------------


class TestWireEmitter:
    def test_protocol(self) -> None:
        assert isinstance(WireEmitter(Wire()), EventEmitter)
        assert isinstance(NullEmitter(), EventEmitter)
        assert isinstance(RecordingEmitter(), EventEmitter)

    def test_correlation_ids_attached(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        emitter = WireEmitter(wire, correlation_id="turn-1", user_id="u1", session_id="s1")
        emitter.thinking_started()
        event = q.get_nowait()
        assert event is not None
        assert event.type == EventType.THINKING_STARTED
        assert event.correlation_id == "turn-1"
        assert event.data == {"user_id": "u1", "session_id": "s1"}

    def test_tool_started_redacts_code(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        WireEmitter(wire).tool_started(
            "execute_analysis_code", {"dataset_id": "s", "code": "x" * 5000}
        )
        event = q.get_nowait()
        assert event is not None
        assert event.data["args"] == {"dataset_id": "s", "code": CODE_PLACEHOLDER}

    def test_tool_finished_error_code_value(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        WireEmitter(wire).tool_finished(
            "t", "Error: boom", "boom", ErrorCode.CODE_EXECUTION_TIMEOUT
        )
        event = q.get_nowait()
        assert event is not None
        assert event.data["error_code"] == "CODE_EXECUTION_TIMEOUT"

    def test_whitespace_tokens_skipped(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        emitter = WireEmitter(wire)
        emitter.token("  \n")
        emitter.token("")
        emitter.token("hi")
        events = [q.get_nowait() for _ in range(q.qsize())]
        assert [e.data["text"] for e in events if e] == ["hi"]

    def test_final_answer_artifacts_default(self) -> None:
        wire = Wire()
        q = wire.subscribe()
        WireEmitter(wire).final_answer("42")
        event = q.get_nowait()
        assert event is not None
        assert event.data["artifacts"] == {}

    def test_transport_failure_is_swallowed(self) -> None:
        class BrokenWire(Wire):
            def send(self, event: WireEvent) -> None:
                raise RuntimeError("socket closed")

        WireEmitter(BrokenWire()).error("msg", ErrorCode.CANCELLED)  # Should not raise


class TestRedactArgs:
    def test_redacts_both_code_keys(self) -> None:
        assert redact_args({"code": "a", "report_code": "b", "title": "t"}) == {
            "code": CODE_PLACEHOLDER,
            "report_code": CODE_PLACEHOLDER,
            "title": "t",
        }

    def test_input_untouched(self) -> None:
        args = {"code": "a"}
        redact_args(args)
        assert args == {"code": "a"}


class TestGuardedEmitter:
    def test_forwards(self) -> None:
        inner = RecordingEmitter()
        GuardedEmitter(inner).explanation("working on it")
        assert inner.events == [("explanation", ("working on it",))]

    def test_swallows_errors(self) -> None:
        inner = ExplodingEmitter()
        guarded = GuardedEmitter(inner)
        guarded.turn_begin("q")
        guarded.tool_finished("t", "s", None, None)
        assert inner.names() == ["turn_begin", "tool_finished"]

    def test_wrap_does_not_nest(self) -> None:
        inner = RecordingEmitter()
        guarded = GuardedEmitter.wrap(inner)
        assert GuardedEmitter.wrap(guarded) is guarded
        assert guarded._inner is inner


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class TestMemoryTurnStore:
    async def test_save_and_load(self) -> None:
        store = MemoryTurnStore()
        assert isinstance(store, TurnStore)
        await store.save("t1", {"status": "running"})
        await store.save("t1", {"status": "completed"})
        assert await store.load("t1") == {"status": "completed"}
        assert len(store.saves) == 2
        assert await store.load("t2") is None


class TestJsonlTurnStore:
    async def test_latest_line_wins(self, tmp_path: Path) -> None:
        store = JsonlTurnStore(tmp_path / "nested" / "turns.jsonl")
        await store.save("t1", {"status": "running"})
        await store.save("t2", {"status": "error"})
        await store.save("t1", {"status": "completed"})

        assert await store.load("t1") == {"status": "completed"}
        assert await store.load("t2") == {"status": "error"}
        assert await store.load("t3") is None

        lines = (tmp_path / "nested" / "turns.jsonl").read_text().splitlines()
        assert len(lines) == 3
        assert json.loads(lines[0]) == {"turn_id": "t1", "record": {"status": "running"}}

    async def test_missing_file(self, tmp_path: Path) -> None:
        store = JsonlTurnStore(tmp_path / "none.jsonl")
        assert await store.load("t1") is None

    async def test_corrupt_line_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "turns.jsonl"
        store = JsonlTurnStore(path)
        await store.save("t1", {"n": 1})
        with open(path, "a") as f:
            f.write("{not json\n\n")
        await store.save("t1", {"n": 2})
        assert await store.load("t1") == {"n": 2}

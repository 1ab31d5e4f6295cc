"""Tests for turnwise.turn.state and turnwise.turn.artifacts."""

from __future__ import annotations

import pytest

from turnwise.errors import ErrorCode
from turnwise.llm.message import Message
from turnwise.turn.artifacts import (
    ANALYSIS_RESULT,
    PREVIOUS_ANALYSIS_RESULT,
    PREVIOUS_REPORT_CODE,
    REPORT_CODE,
    ArtifactStore,
    parsed_data_key,
)
from turnwise.turn.state import StepFinished, StepRetried, StepStarted, TurnContext, TurnStatus


# ---------------------------------------------------------------------------
# ArtifactStore
# ---------------------------------------------------------------------------


class TestArtifactStore:
    def test_put_get(self) -> None:
        store = ArtifactStore()
        store.put(ANALYSIS_RESULT, {"total": 3})
        assert store.analysis_result == {"total": 3}
        assert ANALYSIS_RESULT in store
        assert len(store) == 1

    def test_overwrite_keeps_latest_only(self) -> None:
        store = ArtifactStore()
        store.put("analysis_code", "v1")
        store.put("analysis_code", "v2")
        assert store.analysis_code == "v2"
        assert store.keys() == ["analysis_code"]

    def test_idempotent_overwrite(self) -> None:
        store = ArtifactStore()
        store.put(REPORT_CODE, "same")
        store.put(REPORT_CODE, "same")
        assert store.report_code == "same"
        assert len(store) == 1

    def test_parsed_data_keyed_by_dataset(self) -> None:
        store = ArtifactStore()
        store.update({parsed_data_key("a"): [{"x": 1}], parsed_data_key("b"): []})
        assert store.parsed_data("a") == [{"x": 1}]
        assert store.parsed_data("b") == []
        assert store.parsed_data("c") is None

    def test_empty_defaults(self) -> None:
        store = ArtifactStore()
        assert store.dataset_schemas == {}
        assert store.dataset_samples == {}
        assert store.analysis_code is None
        assert store.get("missing", 5) == 5

    def test_report_data_prefers_current(self) -> None:
        store = ArtifactStore({PREVIOUS_ANALYSIS_RESULT: "old"})
        assert store.report_analysis_data() == "old"
        store.put(ANALYSIS_RESULT, "new")
        assert store.report_analysis_data() == "new"


# ---------------------------------------------------------------------------
# Step log
# ---------------------------------------------------------------------------


class TestStepLog:
    def test_ids_are_sequential(self) -> None:
        turn = TurnContext("q")
        assert turn.begin_step("a") == 1
        assert turn.begin_step("b") == 2

    def test_projection(self) -> None:
        turn = TurnContext("q")
        sid = turn.begin_step("parse_csv_data", {"dataset_id": "s"})
        turn.finish_step(sid, "Success: parsed", observation="{}")
        step = turn.step(sid)
        assert step.tool == "parse_csv_data"
        assert step.args == {"dataset_id": "s"}
        assert step.attempt == 1
        assert step.result_summary == "Success: parsed"
        assert step.finished is True

    def test_retry_increments_attempt(self) -> None:
        turn = TurnContext("q")
        sid = turn.begin_step("t")
        assert turn.retry_step(sid) == 2
        assert turn.retry_step(sid) == 3
        assert turn.step(sid).attempt == 3

    def test_retry_addresses_step_by_id(self) -> None:
        turn = TurnContext("q")
        first = turn.begin_step("same_tool")
        second = turn.begin_step("same_tool")
        turn.retry_step(first)
        assert turn.step(first).attempt == 2
        assert turn.step(second).attempt == 1

    def test_last_finish_wins(self) -> None:
        turn = TurnContext("q")
        sid = turn.begin_step("t")
        turn.finish_step(sid, "Error", error="bad", error_code=ErrorCode.CODE_EXECUTION_FAILED)
        turn.finish_step(sid, "Success")
        step = turn.step(sid)
        assert step.error is None
        assert step.error_code is None
        assert step.result_summary == "Success"

    def test_events_are_append_only(self) -> None:
        turn = TurnContext("q")
        sid = turn.begin_step("t", {"a": 1})
        turn.retry_step(sid)
        turn.finish_step(sid, "done")
        assert [type(e) for e in turn.events] == [StepStarted, StepRetried, StepFinished]

    def test_unknown_step(self) -> None:
        turn = TurnContext("q")
        with pytest.raises(KeyError):
            turn.retry_step(99)
        with pytest.raises(KeyError):
            turn.finish_step(99, "x")
        with pytest.raises(KeyError):
            turn.step(99)

    def test_args_copied(self) -> None:
        turn = TurnContext("q")
        args = {"a": 1}
        sid = turn.begin_step("t", args)
        args["a"] = 2
        assert turn.step(sid).args == {"a": 1}

    def test_tool_error_counts(self) -> None:
        turn = TurnContext("q")
        assert turn.increment_tool_error("x") == 1
        assert turn.increment_tool_error("x") == 2
        assert turn.tool_error_counts == {"x": 2}


# ---------------------------------------------------------------------------
# Terminal transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_starts_running(self) -> None:
        turn = TurnContext("q")
        assert turn.status is TurnStatus.RUNNING
        assert turn.is_finished is False
        assert turn.response_text is None

    def test_final_answer(self) -> None:
        turn = TurnContext("q")
        turn.set_final_answer("42")
        assert turn.status is TurnStatus.COMPLETED
        assert turn.response_text == "42"
        assert turn.finished_at is not None

    def test_clarification(self) -> None:
        turn = TurnContext("q")
        turn.request_clarification("Which year?")
        assert turn.status is TurnStatus.AWAITING_INPUT
        assert turn.final_answer == "Which year?"

    def test_fail_shows_user_message(self) -> None:
        turn = TurnContext("q")
        turn.fail(ErrorCode.MAX_ITERATIONS_REACHED, "internal detail")
        assert turn.status is TurnStatus.ERROR
        assert "allowed number of steps" in (turn.response_text or "")
        assert "internal detail" not in (turn.response_text or "")

    def test_terminal_is_final(self) -> None:
        turn = TurnContext("q")
        turn.set_final_answer("done")
        with pytest.raises(RuntimeError):
            turn.fail(ErrorCode.CANCELLED, "late")
        assert turn.status is TurnStatus.COMPLETED


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class TestViews:
    def test_record(self) -> None:
        artifacts = ArtifactStore({ANALYSIS_RESULT: {"n": 1}, REPORT_CODE: "function R() {}"})
        turn = TurnContext("how many?", artifacts=artifacts)
        sid = turn.begin_step("execute_analysis_code", {"dataset_id": "s"})
        turn.finish_step(sid, "Success: Code executed.")
        turn.set_final_answer("One.")

        record = turn.to_record()
        assert record["status"] == "completed"
        assert record["originalQuery"] == "how many?"
        assert record["aiResponseText"] == "One."
        assert record["aiGeneratedCode"] == "function R() {}"
        assert record["reportAnalysisData"] == {"n": 1}
        assert record["errorCode"] is None
        assert record["steps"] == [
            {
                "tool": "execute_analysis_code",
                "args": {"dataset_id": "s"},
                "attempt": 1,
                "resultSummary": "Success: Code executed.",
                "error": None,
                "errorCode": None,
            }
        ]
        assert record["completedAt"] is not None

    def test_record_error(self) -> None:
        turn = TurnContext("q")
        turn.fail(ErrorCode.ORACLE_UNAVAILABLE, "connection refused")
        record = turn.to_record()
        assert record["errorCode"] == "ORACLE_UNAVAILABLE"
        assert record["errorMessage"] == "connection refused"

    def test_context_for_oracle(self) -> None:
        artifacts = ArtifactStore({PREVIOUS_REPORT_CODE: "code", PREVIOUS_ANALYSIS_RESULT: [1]})
        turn = TurnContext(
            "q",
            history=[Message.user("earlier")],
            artifacts=artifacts,
            user_context="analyst",
        )
        ctx = turn.context_for_oracle()
        assert ctx["original_query"] == "q"
        assert ctx["history"][0].text == "earlier"
        assert ctx["has_previous_report_code"] is True
        assert ctx["previous_analysis_result"] == [1]
        assert ctx["analysis_result"] is None
        assert ctx["user_context"] == "analyst"
        assert ctx["team_context"] is None

"""Tests for turnwise.agent.parser."""

from __future__ import annotations

import json

from turnwise.agent.action import ClarificationRequest, FinalAnswer, ToolCall
from turnwise.agent.parser import (
    DEFAULT_ANSWER,
    DEFAULT_QUESTION,
    EMPTY_ANSWER_FALLBACK,
    extract_json_payload,
    extract_tagged,
    load_payload,
    parse,
    sanitize_json,
)

TOOLS = ["parse_csv_data", "execute_analysis_code", "generate_analysis_code"]


def _fenced(payload: dict) -> str:
    return f"```json\n{json.dumps(payload)}\n```"


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class TestExtractTagged:
    def test_present(self) -> None:
        inner, rest = extract_tagged("a <thinking> plan </thinking> b", "thinking")
        assert inner == "plan"
        assert rest == "a  b"

    def test_absent(self) -> None:
        inner, rest = extract_tagged("no tags here", "thinking")
        assert inner is None
        assert rest == "no tags here"

    def test_multiline_case_insensitive(self) -> None:
        inner, _ = extract_tagged("<THINKING>line1\nline2</THINKING>", "thinking")
        assert inner == "line1\nline2"


class TestExtractJsonPayload:
    def test_fenced_preferred(self) -> None:
        text = 'noise {"x": 1} ```json\n{"tool": "a", "args": {}}\n```'
        assert extract_json_payload(text) == '{"tool": "a", "args": {}}'

    def test_bare_braces(self) -> None:
        assert extract_json_payload('prefix {"a": {"b": 1}} suffix') == '{"a": {"b": 1}}'

    def test_none(self) -> None:
        assert extract_json_payload("nothing") is None
        assert extract_json_payload("} backwards {") is None


class TestSanitizeJson:
    def test_raw_newline_in_string(self) -> None:
        broken = '{"code": "a = 1\nb = 2"}'
        assert json.loads(sanitize_json(broken)) == {"code": "a = 1\nb = 2"}

    def test_unescaped_inner_quote(self) -> None:
        broken = '{"textResponse": "Revenue was "high" this year"}'
        assert json.loads(sanitize_json(broken)) == {
            "textResponse": 'Revenue was "high" this year'
        }

    def test_valid_json_unchanged(self) -> None:
        valid = '{"a": "x", "b": [1, "y"], "c": {"d": "e"}}'
        assert sanitize_json(valid) == valid


class TestLoadPayload:
    def test_sanitized_retry(self) -> None:
        text = '```json\n{"tool": "x", "args": {"code": "print(1)\nprint(2)"}}\n```'
        payload = load_payload(text)
        assert payload == {"tool": "x", "args": {"code": "print(1)\nprint(2)"}}

    def test_non_object(self) -> None:
        assert load_payload("[1, 2]") is None

    def test_hopeless(self) -> None:
        assert load_payload("{ malformed") is None


# ---------------------------------------------------------------------------
# parse: totality
# ---------------------------------------------------------------------------


class TestParseTotality:
    def test_empty(self) -> None:
        result = parse("", TOOLS)
        assert isinstance(result, FinalAnswer)
        assert result.text == DEFAULT_ANSWER

    def test_none_text(self) -> None:
        result = parse(None, TOOLS)  # type: ignore[arg-type]
        assert isinstance(result, FinalAnswer)

    def test_plain_prose(self) -> None:
        result = parse("not json", TOOLS)
        assert result == FinalAnswer(text="not json")

    def test_malformed_json(self) -> None:
        result = parse("{ malformed", TOOLS)
        assert isinstance(result, FinalAnswer)
        assert result.text == "{ malformed"

    def test_valid_tool_call(self) -> None:
        text = _fenced({"tool": "parse_csv_data", "args": {"dataset_id": "sales"}})
        assert parse(text, TOOLS) == ToolCall("parse_csv_data", {"dataset_id": "sales"})


# ---------------------------------------------------------------------------
# parse: action selection
# ---------------------------------------------------------------------------


class TestParseActions:
    def test_tags_carried(self) -> None:
        text = (
            "<thinking>need the rows</thinking>\n"
            "<user_explanation>Loading your data.</user_explanation>\n"
            + _fenced({"tool": "parse_csv_data", "args": {"dataset_id": "s"}})
        )
        result = parse(text, TOOLS)
        assert isinstance(result, ToolCall)
        assert result.thinking == "need the rows"
        assert result.explanation == "Loading your data."

    def test_final_answer(self) -> None:
        text = _fenced({"tool": "_answerUserTool", "args": {"textResponse": " 42 "}})
        assert parse(text, TOOLS) == FinalAnswer(text="42")

    def test_final_answer_missing_text_uses_explanation(self) -> None:
        text = "<user_explanation>All done.</user_explanation>" + _fenced(
            {"tool": "_answerUserTool", "args": {}}
        )
        result = parse(text, TOOLS)
        assert isinstance(result, FinalAnswer)
        assert result.text == "All done."

    def test_final_answer_missing_everything(self) -> None:
        text = _fenced({"tool": "_answerUserTool", "args": {"textResponse": ""}})
        assert parse(text, TOOLS).text == EMPTY_ANSWER_FALLBACK  # type: ignore[union-attr]

    def test_clarification(self) -> None:
        text = _fenced({"tool": "ask_user_for_clarification", "args": {"question": "Which year?"}})
        assert parse(text, TOOLS) == ClarificationRequest(question="Which year?")

    def test_clarification_default_question(self) -> None:
        text = _fenced({"tool": "ask_user_for_clarification", "args": {}})
        result = parse(text, TOOLS)
        assert isinstance(result, ClarificationRequest)
        assert result.question == DEFAULT_QUESTION

    def test_unknown_tool_strict(self) -> None:
        text = "I will guess " + _fenced({"tool": "nope", "args": {}})
        result = parse(text, TOOLS)
        assert isinstance(result, FinalAnswer)
        assert result.text.startswith("I will guess")

    def test_unknown_tool_allowed(self) -> None:
        text = _fenced({"tool": "nope", "args": {"a": 1}})
        assert parse(text, TOOLS, allow_unknown=True) == ToolCall("nope", {"a": 1})

    def test_args_not_object(self) -> None:
        text = _fenced({"tool": "parse_csv_data", "args": "sales"})
        assert isinstance(parse(text, TOOLS), FinalAnswer)

    def test_bare_json_without_fence(self) -> None:
        text = 'Sure. {"tool": "parse_csv_data", "args": {"dataset_id": "s"}}'
        assert parse(text, TOOLS) == ToolCall("parse_csv_data", {"dataset_id": "s"})

    def test_thinking_only(self) -> None:
        result = parse("<thinking>hmm</thinking>", TOOLS)
        assert isinstance(result, FinalAnswer)
        assert result.text == "hmm"

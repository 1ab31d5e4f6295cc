"""Response parser: turn the oracle's raw reply into an ``Action``.

The reply is expected to look like::

    <thinking>private reasoning</thinking>
    <user_explanation>what I'm doing, for the user</user_explanation>
    ```json
    {"tool": "parse_csv_data", "args": {"dataset_id": "sales"}}
    ```

Every part is optional and models routinely get the format wrong, so
``parse`` never raises: anything it cannot interpret becomes a
``FinalAnswer`` built from whatever text is available.

Stages, each usable on its own:
    extract_tagged       -> pull one <tag>...</tag> segment out of the text
    extract_json_payload -> find the candidate JSON object (fenced or bare)
    sanitize_json        -> escape raw newlines and stray quotes inside strings
    load_payload         -> json.loads, retrying once on the sanitized text
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from typing import Any

from turnwise.agent.action import (
    ANSWER_TOOL,
    CLARIFY_TOOL,
    Action,
    ClarificationRequest,
    FinalAnswer,
    ToolCall,
)

logger = logging.getLogger(__name__)

DEFAULT_ANSWER = "Processing complete."
EMPTY_ANSWER_FALLBACK = "Action completed."
DEFAULT_QUESTION = "Could you clarify what you would like me to do?"

_FENCED_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}


def extract_tagged(text: str, tag: str) -> tuple[str | None, str]:
    """Return ``(inner_text, text_without_segment)`` for the first ``<tag>`` block.

    ``inner_text`` is None when the tag pair is absent.
    """
    pattern = re.compile(rf"<{tag}>(.*?)</{tag}>", re.DOTALL | re.IGNORECASE)
    match = pattern.search(text)
    if match is None:
        return None, text
    inner = match.group(1).strip()
    remaining = (text[: match.start()] + text[match.end() :]).strip()
    return inner, remaining


def extract_json_payload(text: str) -> str | None:
    """Locate the candidate JSON object: a ```json fence first, else the outermost braces."""
    match = _FENCED_RE.search(text)
    if match:
        return match.group(1)
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def sanitize_json(candidate: str) -> str:
    """Escape characters that commonly break JSON emitted by a model.

    Inside string values, raw control characters become escape sequences
    and a double quote that does not look like the end of the string is
    escaped. This mostly matters for embedded source code.
    """
    out: list[str] = []
    in_string = False
    escaped = False
    for i, ch in enumerate(candidate):
        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
            continue
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            out.append(ch)
            escaped = True
        elif ch == '"':
            if _closes_string(candidate, i + 1):
                in_string = False
                out.append(ch)
            else:
                out.append('\\"')
        elif ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
        else:
            out.append(ch)
    return "".join(out)


def _closes_string(text: str, pos: int) -> bool:
    """Guess whether a quote at ``pos - 1`` terminates a JSON string."""
    j = _skip_ws(text, pos)
    if j >= len(text):
        return True
    if text[j] in "}]:":
        return True
    if text[j] == ",":
        k = _skip_ws(text, j + 1)
        return k >= len(text) or text[k] in '"{[}]'
    return False


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t\r\n":
        pos += 1
    return pos


def load_payload(text: str) -> dict[str, Any] | None:
    """Find and decode the JSON object in ``text``; None if there is none."""
    candidate = extract_json_payload(text)
    if candidate is None:
        return None
    for attempt in (candidate, sanitize_json(candidate)):
        try:
            value = json.loads(attempt)
        except json.JSONDecodeError:
            continue
        return value if isinstance(value, dict) else None
    logger.warning("Could not decode action payload: %.200s", candidate)
    return None


def parse(
    raw_text: str,
    known_tool_names: Iterable[str],
    *,
    allow_unknown: bool = False,
) -> Action:
    """Parse an oracle reply. Never raises.

    Args:
        raw_text: Full accumulated oracle text.
        known_tool_names: Names of registered tools.
        allow_unknown: Return a ToolCall for well-formed payloads naming an
            unregistered tool, so the dispatcher can report UNKNOWN_TOOL.
    """
    try:
        return _parse(raw_text or "", frozenset(known_tool_names), allow_unknown)
    except Exception as e:
        logger.error("Response parsing failed: %s", e, exc_info=True)
        return FinalAnswer(text=(raw_text or "").strip() or DEFAULT_ANSWER)


def _parse(text: str, known: frozenset[str], allow_unknown: bool) -> Action:
    thinking, rest = extract_tagged(text, "thinking")
    explanation, rest = extract_tagged(rest, "user_explanation")

    payload = load_payload(rest) if rest else None
    if payload is not None:
        tool = payload.get("tool")
        args = payload.get("args")
        if isinstance(tool, str) and isinstance(args, dict):
            if tool == ANSWER_TOOL:
                answer = args.get("textResponse")
                if isinstance(answer, str) and answer.strip():
                    return FinalAnswer(answer.strip(), thinking, explanation)
                logger.warning("Final-answer payload without textResponse")
                text_out = explanation or thinking or EMPTY_ANSWER_FALLBACK
                return FinalAnswer(text_out, thinking, explanation)

            if tool == CLARIFY_TOOL:
                question = args.get("question")
                if not isinstance(question, str) or not question.strip():
                    question = DEFAULT_QUESTION
                return ClarificationRequest(question.strip(), thinking, explanation)

            if tool in known or allow_unknown:
                return ToolCall(tool, args, thinking, explanation)

            logger.warning("Oracle requested unknown tool %s; treating reply as answer", tool)
        else:
            logger.warning("Payload is not a {tool, args} object; treating reply as answer")

    return FinalAnswer(rest or explanation or thinking or DEFAULT_ANSWER, thinking, explanation)

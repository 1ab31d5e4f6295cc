"""Bounded renderings of tool results for step records, clients and the oracle."""

from __future__ import annotations

import json
from typing import Any

from turnwise.tool.base import ToolResult

SUMMARY_LIMIT = 150
ORACLE_ERROR_LIMIT = 500
ORACLE_PREVIEW_LIMIT = 500
MAX_OUTPUT_LINES = 200
MAX_OUTPUT_BYTES = 8 * 1024


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def truncate_output(
    text: str,
    max_lines: int = MAX_OUTPUT_LINES,
    max_bytes: int = MAX_OUTPUT_BYTES,
) -> str:
    """Bound process output by lines and bytes, keeping the tail.

    Errors tend to be at the end of a traceback, so the head is dropped.
    """
    if not text:
        return text

    lines = text.split("\n")
    byte_count = len(text.encode("utf-8", errors="replace"))
    if len(lines) <= max_lines and byte_count <= max_bytes:
        return text

    kept = lines[-max_lines:]
    skipped = len(lines) - len(kept)
    result = "\n".join(kept)
    result_bytes = result.encode("utf-8", errors="replace")
    skipped_bytes = 0
    if len(result_bytes) > max_bytes:
        result = result_bytes[-max_bytes:].decode("utf-8", errors="ignore")
        skipped_bytes = len(result_bytes) - max_bytes

    notice_parts = []
    if skipped > 0:
        notice_parts.append(f"{skipped} lines skipped")
    if skipped_bytes > 0:
        notice_parts.append(f"{skipped_bytes} bytes skipped")
    return f"[Output truncated: {', '.join(notice_parts)}]\n{result}"


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def summarize_tool_result(result: ToolResult) -> str:
    """One-line summary stored on the step and sent with tool-finished events."""
    if result.is_error:
        code = f" (Code: {result.error_code.value})" if result.error_code else ""
        return f"Error: {truncate(str(result.error), SUMMARY_LIMIT)}{code}"

    data = result.result
    if data is None:
        return "Tool executed successfully with no specific output."

    if isinstance(data, dict):
        if isinstance(data.get("summary"), str):
            return f"Success: {truncate(data['summary'], SUMMARY_LIMIT)}"
        if isinstance(data.get("columns"), list):
            return f"Success: Retrieved schema ({len(data['columns'])} columns)."
        for key, label in (("code", "analysis"), ("report_code", "report")):
            if isinstance(data.get(key), str):
                return f"Success: Generated {label} code snippet (length: {len(data[key])})."
        if "result" in data:
            return f"Success: Code executed. Result: {truncate(_dumps(data['result']), 100)}"

    if isinstance(data, list):
        return f"Success: Found {len(data)} item(s)."

    if isinstance(data, (dict, tuple)):
        return f"Success: {truncate(_dumps(data), SUMMARY_LIMIT)}"
    return f"Success: {truncate(str(data), SUMMARY_LIMIT)}"


def format_tool_result_for_llm(tool_name: str, result: ToolResult) -> str:
    """JSON observation the oracle sees for a finished step.

    Large payloads (generated code, parsed rows, full schemas) stay in the
    artifact store; only a summary or a short preview is sent.
    """
    if result.is_error:
        return _dumps(
            {
                "tool_name": tool_name,
                "status": "error",
                "error": truncate(str(result.error), ORACLE_ERROR_LIMIT),
                "errorCode": result.error_code.value if result.error_code else None,
            }
        )

    data = result.result
    summary = "Tool executed successfully."
    payload: Any = None

    if tool_name in ("generate_analysis_code", "generate_report_code") and isinstance(data, dict):
        code = data.get("code") or data.get("report_code") or ""
        summary = f"Generated code snippet (length: {len(code)}). Code is stored for later steps."
    elif tool_name == "parse_csv_data" and isinstance(data, dict):
        summary = data.get("summary") or f"Parsed {data.get('row_count', 0)} rows."
    elif tool_name == "execute_analysis_code" and isinstance(data, dict):
        summary = "Code executed successfully. Full result is stored for later steps."
        payload = {"result_preview": truncate(_dumps(data.get("result")), ORACLE_PREVIEW_LIMIT)}
    elif tool_name == "list_datasets" and isinstance(data, list):
        summary = f"Found {len(data)} dataset(s)."
        payload = [
            {"id": d.get("id"), "name": d.get("name")} for d in data[:5] if isinstance(d, dict)
        ]
    elif tool_name == "get_dataset_schema" and isinstance(data, dict) and "columns" in data:
        summary = f"Retrieved schema ({len(data['columns'])} columns). Full schema is stored."
    elif data is not None:
        preview = _dumps(data)
        summary = f"Tool execution succeeded. Result preview: {truncate(preview, SUMMARY_LIMIT)}"
        if len(preview) <= SUMMARY_LIMIT and isinstance(data, (str, int, float, bool)):
            payload = data

    rendered: dict[str, Any] = {
        "tool_name": tool_name,
        "status": "success",
        "result_summary": summary,
    }
    if payload is not None:
        rendered["result"] = payload
    return _dumps(rendered)

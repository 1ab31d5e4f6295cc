"""LLM-backed generation of analysis code and report components."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from turnwise.llm.provider import ChatProvider
from turnwise.llm.streaming import complete_text
from turnwise.tool.summary import truncate

logger = logging.getLogger(__name__)

REPORT_COMPONENT = "ReportComponent"

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_IMPORT = re.compile(r"^\s*import\s+.*?(?:from\s+['\"].*?['\"])?;?\s*$", re.MULTILINE)
_EXPORT_DEFAULT = re.compile(r"^\s*export\s+default\s+\w+;?\s*$", re.MULTILINE)
_EXPORT_DECL = re.compile(r"^(\s*)export\s+(default\s+)?(const|function|let|class)\s+", re.MULTILINE)

_ANALYSIS_SYSTEM = """You write Python analysis code that runs in a restricted child interpreter.

Available names:
- `input_data`: the parsed dataset, a list of dicts (one per row). Numbers are already
  int/float; empty cells are None. Do NOT read files or parse CSV.
- `send_result(value)`: call it EXACTLY ONCE with a JSON-serializable result.

Rules:
- Standard library only (statistics, collections, datetime, math, itertools, json).
- No network, no file or subprocess access.
- Skip rows whose needed values are None or of the wrong type.
- Finish quickly; the run is killed after a short timeout.
- Wrap the logic in try/except and call send_result({{"error": str(exc)}}) on failure.
- Return a dict with clearly named keys so the numbers can be quoted to the user.

Dataset columns:
{columns}

Output ONLY the Python code. No markdown, no explanations."""

_REPORT_SYSTEM = f"""You are a React developer building a data report with Recharts.

Write ONE JavaScript function named `{REPORT_COMPONENT}` that receives `{{ reportData }}` as props.
- Use React.createElement only (no JSX). React and Recharts are globals; do not import anything.
- Do not export anything.
- Check that every value exists and has the expected type before using it; render a short
  message for a section whose data is missing instead of crashing.
- Chart `data` props must be arrays.
- Render specific properties, never whole objects, as children.

Output ONLY the code, starting with `function {REPORT_COMPONENT}`."""


class CodeGenerationError(Exception):
    """The model returned no usable code."""


def strip_fences(text: str) -> str:
    text = text.strip()
    match = _FENCE.match(text)
    if match:
        return match.group(1).strip()
    return text


def clean_report_code(code: str) -> str:
    """Remove markdown fences and module syntax from generated component code."""
    code = strip_fences(code)
    code = _IMPORT.sub("", code)
    code = _EXPORT_DEFAULT.sub("", code)
    code = _EXPORT_DECL.sub(r"\1\3 ", code)
    return code.strip()


def has_module_syntax(code: str) -> bool:
    return bool(re.search(r"^\s*(import|export)\s", code, re.MULTILINE))


def analysis_goal_with_error(goal: str, previous_error: str) -> str:
    return (
        "The previous attempt to generate and execute analysis code failed with this error: "
        f'"{previous_error}". Please fix the code to avoid this error. '
        f'Original goal: "{goal}"'
    )


class LLMCodeGenerator:
    """Produces analysis scripts and report components with a ChatProvider."""

    def __init__(self, provider: ChatProvider) -> None:
        self._provider = provider

    async def generate_analysis_code(
        self,
        goal: str,
        schema: dict[str, Any] | None,
        previous_error: str | None = None,
    ) -> str:
        columns = "\n".join(
            f"- {c.get('name')} ({c.get('type', 'unknown')})"
            for c in (schema or {}).get("columns", [])
        ) or "(no schema available)"
        system = _ANALYSIS_SYSTEM.format(columns=columns)
        prompt = analysis_goal_with_error(goal, previous_error) if previous_error else goal

        logger.info("Generating analysis code for: %s", truncate(goal, 80))
        code = strip_fences(await complete_text(self._provider, system, prompt))
        if not code:
            raise CodeGenerationError("The model returned no analysis code")
        if "send_result(" not in code:
            logger.warning("Generated analysis code does not call send_result()")
        return code

    async def generate_report_code(
        self,
        summary: str,
        analysis_data: Any,
        title: str | None = None,
        chart_type: str | None = None,
        columns: list[str] | None = None,
    ) -> str:
        lines = [f"Analysis summary: {summary}"]
        if title:
            lines.append(f"Report title: {title}")
        if chart_type:
            lines.append(f"Preferred chart type: {chart_type}")
        if columns:
            lines.append(f"Focus on: {', '.join(columns)}")
        lines.append("reportData (JSON):")
        lines.append(truncate(json.dumps(analysis_data, indent=2, default=str), 12000))

        logger.info("Generating report code")
        raw = await complete_text(self._provider, _REPORT_SYSTEM, "\n".join(lines))
        code = clean_report_code(raw)
        if code and f"function {REPORT_COMPONENT}" not in code:
            logger.warning("Generated report code is missing function %s", REPORT_COMPONENT)
        return code

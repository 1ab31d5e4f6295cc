"""Prompt assembly: a pure function from turn state to oracle input."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from turnwise.agent.action import ANSWER_TOOL, CLARIFY_TOOL
from turnwise.llm.message import Message
from turnwise.tool.summary import truncate
from turnwise.turn.state import Step

HISTORY_WINDOW = 10
SAMPLE_CHARS = 1000

_INTRO = (
    "You are a careful data analyst assistant. You help the user answer "
    "questions about their tabular datasets by loading data, writing and "
    "running analysis code, and explaining the results accurately."
)

_OUTPUT_FORMAT = f"""## Output format
You work in a loop: reason, act, observe. Every reply MUST contain:
1. Your private reasoning inside <thinking> ... </thinking> tags.
2. Optionally, one or two sentences for the user inside <user_explanation> ... </user_explanation>
   tags describing what you are doing, in plain language. Do not mention tool names or ids there.
3. Exactly one JSON action object in a ```json fence:
   ```json
   {{"tool": "<tool_name>", "args": {{ ... }}}}
   ```

To give the final answer use:
   ```json
   {{"tool": "{ANSWER_TOOL}", "args": {{"textResponse": "Your complete answer."}}}}
   ```
The key inside "args" MUST be "textResponse".

If the request is ambiguous or information is missing, ask instead:
   ```json
   {{"tool": "{CLARIFY_TOOL}", "args": {{"question": "A specific question."}}}}
   ```"""

_GUIDANCE = """## Workflow
- Dataset schemas and samples are listed above; only call list_datasets or get_dataset_schema if context is missing.
- Typical analysis: parse_csv_data -> generate_analysis_code -> execute_analysis_code -> answer.
  The generated code is kept by the system; you never need to resend it to execute_analysis_code.
- For a report, call generate_report_code after a successful analysis, then answer.
- To modify the previous report without new calculations, call generate_report_code directly;
  the previous analysis data is reused automatically.
- Do not repeat a call that already succeeded this turn.
- Use the exact dataset ids shown in the dataset section.

## Errors
If the last step failed, explain briefly in <thinking>. Do not repeat the identical call;
change the arguments, ask for clarification, or tell the user you cannot proceed."""


@dataclass
class OraclePrompt:
    system: str
    messages: list[Message]


class PromptBuilder:
    """Assembles the oracle's system prompt and message list.

    ``build`` reads only its arguments; the same state always yields the
    same prompt.
    """

    def __init__(self, intro: str = _INTRO) -> None:
        self.intro = intro

    def build(self, context: dict[str, Any], tools: list[dict[str, Any]]) -> OraclePrompt:
        sections = [
            self.intro,
            _OUTPUT_FORMAT,
            self._progress(context.get("steps", [])),
            self._previous_artifacts(context),
            self._analysis_result(context.get("analysis_result")),
            self._user_team(context.get("user_context"), context.get("team_context")),
            self._datasets(context.get("dataset_schemas", {}), context.get("dataset_samples", {})),
            self._tools(tools),
            _GUIDANCE,
        ]
        system = "\n\n".join(s for s in sections if s)

        history: list[Message] = list(context.get("history", []))[-HISTORY_WINDOW:]
        messages = [*history, Message.user(context.get("original_query", ""))]
        return OraclePrompt(system=system, messages=messages)

    # --- Sections ---

    def _progress(self, steps: list[Step]) -> str:
        visible = [s for s in steps if not s.tool.startswith("_")]
        if not visible:
            return "## Current turn progress\nNo actions taken yet this turn."
        lines = ["## Current turn progress"]
        for n, step in enumerate(visible, 1):
            lines.append(f"{n}. Tool: {step.tool} (attempt {step.attempt})")
            lines.append(f"   Args: {_summarize_args(step.args)}")
            lines.append(f"   Result: {step.observation or step.result_summary or 'N/A'}")
            if step.error:
                code = f" ({step.error_code.value})" if step.error_code else ""
                lines.append(f"   Error: {truncate(step.error, 150)}{code}")
        return "\n".join(lines)

    def _previous_artifacts(self, context: dict[str, Any]) -> str:
        previous = context.get("previous_analysis_result")
        has_code = context.get("has_previous_report_code", False)
        if previous is None and not has_code:
            return ""
        summary = truncate(json.dumps(previous, default=str), 150) if previous is not None else "None"
        return (
            "## Artifacts from the previous turn\n"
            f"- Previous analysis data: {summary}\n"
            f"- Previous report code available: {'yes' if has_code else 'no'}"
        )

    def _analysis_result(self, result: Any) -> str:
        if result is None:
            return "## Analysis results this turn\nNo analysis has been run this turn."
        rendered = json.dumps(result, indent=2, default=str)
        return (
            "## Analysis results this turn (use these figures in answers and reports)\n"
            f"```json\n{truncate(rendered, 4000)}\n```"
        )

    def _user_team(self, user_ctx: str | None, team_ctx: str | None) -> str:
        if not user_ctx and not team_ctx:
            return ""
        return (
            "## User and team context\n"
            f"User: {user_ctx or 'Not set.'}\n"
            f"Team: {team_ctx or 'Not set.'}"
        )

    def _datasets(
        self,
        schemas: dict[str, dict[str, Any]],
        samples: dict[str, dict[str, Any]],
    ) -> str:
        if not schemas:
            return "## Available datasets\nNo datasets are selected for this session."
        lines = ["## Available datasets (use these exact ids)"]
        for dataset_id, schema in schemas.items():
            lines.append(f"\n### Dataset id: `{dataset_id}`")
            lines.append(f"Name: {schema.get('name') or dataset_id}")
            if schema.get("description"):
                lines.append(f"Description: {schema['description']}")
            columns = schema.get("columns") or []
            if columns:
                for col in columns:
                    lines.append(f"- {col.get('name')} ({col.get('type', 'unknown')})")
            else:
                lines.append("No schema information available.")
            sample = samples.get(dataset_id)
            if sample and sample.get("rows"):
                rendered = json.dumps(sample["rows"], indent=2, default=str)
                lines.append(
                    f"Sample ({len(sample['rows'])} of {sample.get('total_rows', '?')} rows):"
                )
                lines.append(f"```json\n{truncate(rendered, SAMPLE_CHARS)}\n```")
        return "\n".join(lines)

    def _tools(self, tools: list[dict[str, Any]]) -> str:
        lines = ["## Available tools"]
        for tool in tools:
            params = tool.get("parameters", {}).get("properties", {})
            required = set(tool.get("parameters", {}).get("required", []))
            arg_desc = ", ".join(
                f"{name}{'' if name in required else '?'}: {spec.get('type', 'any')}"
                for name, spec in params.items()
            )
            lines.append(f"- {tool['name']}({arg_desc}): {tool['description']}")
        return "\n".join(lines)


def _summarize_args(args: dict[str, Any]) -> str:
    if not args:
        return "none"
    shown = {}
    for key, value in args.items():
        if key in ("code", "report_code"):
            continue
        if isinstance(value, str) and len(value) > 50:
            value = value[:50] + "..."
        shown[key] = value
    return truncate(json.dumps(shown, default=str), 150)

"""Tests for turnwise.codegen."""

from __future__ import annotations

import pytest
from fakes import ScriptedProvider

from turnwise.codegen import (
    CodeGenerationError,
    LLMCodeGenerator,
    clean_report_code,
    has_module_syntax,
    strip_fences,
)


class TestCleaning:
    def test_strip_fences(self) -> None:
        assert strip_fences("```python\nx = 1\n```") == "x = 1"
        assert strip_fences("x = 1") == "x = 1"

    def test_clean_report_code(self) -> None:
        raw = (
            "```jsx\n"
            "import React from 'react';\n"
            "import { BarChart } from 'recharts';\n"
            "export function ReportComponent({ reportData }) {\n"
            "  return React.createElement('div', null, 'ok');\n"
            "}\n"
            "export default ReportComponent;\n"
            "```"
        )
        cleaned = clean_report_code(raw)
        assert cleaned.startswith("function ReportComponent")
        assert "import" not in cleaned
        assert "export" not in cleaned
        assert has_module_syntax(cleaned) is False

    def test_has_module_syntax(self) -> None:
        assert has_module_syntax("const a = 1;\nexport const b = 2;")
        assert not has_module_syntax("const important = 1;")


class TestLLMCodeGenerator:
    async def test_analysis_prompt_includes_schema_and_error(self) -> None:
        provider = ScriptedProvider(["```python\nsend_result(1)\n```"])
        generator = LLMCodeGenerator(provider)
        code = await generator.generate_analysis_code(
            "total revenue",
            {"columns": [{"name": "revenue", "type": "integer"}]},
            previous_error="NameError: rows",
        )
        assert code == "send_result(1)"
        system, messages = provider.calls[0]
        assert "- revenue (integer)" in system
        prompt = messages[0]["content"]
        assert "NameError: rows" in prompt
        assert 'Original goal: "total revenue"' in prompt

    async def test_analysis_empty_raises(self) -> None:
        generator = LLMCodeGenerator(ScriptedProvider(["   "]))
        with pytest.raises(CodeGenerationError):
            await generator.generate_analysis_code("g", None)

    async def test_report(self) -> None:
        provider = ScriptedProvider(["export default function ReportComponent({ reportData }) {}"])
        generator = LLMCodeGenerator(provider)
        code = await generator.generate_report_code(
            "sales up", {"total": 5}, title="Sales", chart_type="bar", columns=["month"]
        )
        assert code == "function ReportComponent({ reportData }) {}"
        prompt = provider.calls[0][1][0]["content"]
        assert "Report title: Sales" in prompt
        assert "Focus on: month" in prompt
        assert '"total": 5' in prompt

"""Generate report code tool."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, Field

from turnwise.codegen import LLMCodeGenerator, has_module_syntax
from turnwise.errors import ErrorCode
from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolOk, ToolResult
from turnwise.turn.artifacts import REPORT_CODE

logger = logging.getLogger(__name__)


class GenerateReportCodeParams(BaseModel):
    analysis_summary: str = Field(description="Key findings the report should present.")
    dataset_id: str = Field(description="Exact id of the analysed dataset.")
    title: str | None = Field(default=None, description="Report title.")
    chart_type: str | None = Field(default=None, description="Preferred chart type, e.g. bar or line.")
    columns_to_visualize: list[str] | None = Field(
        default=None, description="Columns or result keys to focus on."
    )


class GenerateReportCodeTool(BaseTool[GenerateReportCodeParams]):
    name: ClassVar[str] = "generate_report_code"
    description: ClassVar[str] = (
        "Generate a React report component visualizing the analysis results. "
        "Uses this turn's analysis result, or the previous turn's when none was run."
    )
    param_model: ClassVar[type[BaseModel]] = GenerateReportCodeParams

    def __init__(self, generator: LLMCodeGenerator) -> None:
        self._generator = generator

    async def execute(
        self, params: GenerateReportCodeParams, ctx: ExecutionContext
    ) -> ToolResult:
        data = ctx.artifacts.report_analysis_data()
        if data is None:
            return ToolError(
                error="Analysis results are missing. Run an analysis before generating a report.",
                error_code=ErrorCode.MISSING_ANALYSIS_DATA,
            )

        try:
            code = await self._generator.generate_report_code(
                params.analysis_summary,
                data,
                title=params.title,
                chart_type=params.chart_type,
                columns=params.columns_to_visualize,
            )
        except Exception as e:
            logger.warning("Report code generation failed: %s", e)
            return ToolError(
                error=f"AI failed to generate report code: {e}",
                error_code=ErrorCode.CODE_GENERATION_FAILED,
            )

        if not code:
            return ToolError(
                error="AI generated empty report code.",
                error_code=ErrorCode.CODE_GENERATION_EMPTY,
            )
        if has_module_syntax(code):
            return ToolError(
                error="Generated report code contains import/export statements.",
                error_code=ErrorCode.CODE_GENERATION_INVALID,
            )

        logger.info("Generated report code for %s (%d chars)", params.dataset_id, len(code))
        return ToolOk(result={"report_code": code}, artifacts={REPORT_CODE: code})

"""Generate analysis code tool."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, Field

from turnwise.codegen import CodeGenerationError, LLMCodeGenerator
from turnwise.errors import ErrorCode
from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolOk, ToolResult
from turnwise.turn.artifacts import ANALYSIS_CODE

logger = logging.getLogger(__name__)


class GenerateAnalysisCodeParams(BaseModel):
    analysis_goal: str = Field(description="What the analysis must compute, in plain language.")
    dataset_id: str = Field(description="Exact id of the dataset the code will run on.")
    previous_error: str | None = Field(
        default=None,
        description="Error from a previous attempt that the new code must avoid.",
    )


class GenerateAnalysisCodeTool(BaseTool[GenerateAnalysisCodeParams]):
    """Write analysis code for a goal; the code is kept as a turn artifact."""

    name: ClassVar[str] = "generate_analysis_code"
    description: ClassVar[str] = (
        "Generate Python analysis code for a goal on a dataset. "
        "The code is stored by the system for execute_analysis_code."
    )
    param_model: ClassVar[type[BaseModel]] = GenerateAnalysisCodeParams

    def __init__(self, generator: LLMCodeGenerator) -> None:
        self._generator = generator

    async def execute(
        self, params: GenerateAnalysisCodeParams, ctx: ExecutionContext
    ) -> ToolResult:
        schema = ctx.dataset_schemas.get(params.dataset_id)
        if schema is None:
            logger.debug("No schema cached for %s", params.dataset_id)
        try:
            code = await self._generator.generate_analysis_code(
                params.analysis_goal, schema, params.previous_error
            )
        except CodeGenerationError as e:
            return ToolError(error=str(e), error_code=ErrorCode.CODE_GENERATION_EMPTY)
        except Exception as e:
            logger.warning("Analysis code generation failed: %s", e)
            return ToolError(
                error=f"AI failed to generate analysis code: {e}",
                error_code=ErrorCode.CODE_GENERATION_FAILED,
            )

        return ToolOk(result={"code": code}, artifacts={ANALYSIS_CODE: code})

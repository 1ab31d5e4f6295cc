"""Execute analysis code tool."""

from __future__ import annotations

import ast
import logging
from typing import ClassVar

from pydantic import BaseModel, Field

from turnwise.errors import ErrorCode
from turnwise.sandbox import CodeSandbox, classify_sandbox_error
from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolOk, ToolResult
from turnwise.turn.artifacts import ANALYSIS_RESULT

logger = logging.getLogger(__name__)


class ExecuteAnalysisCodeParams(BaseModel):
    dataset_id: str = Field(description="Exact id of the dataset whose parsed rows are the input.")
    code: str | None = Field(default=None, description="Filled in by the system.")


class ExecuteAnalysisCodeTool(BaseTool[ExecuteAnalysisCodeParams]):
    """Run the turn's generated analysis code against parsed rows.

    ``code`` is a system parameter: the engine substitutes the latest
    generated code, so the oracle never sends it.
    """

    name: ClassVar[str] = "execute_analysis_code"
    description: ClassVar[str] = (
        "Execute the most recently generated analysis code on a parsed dataset. "
        "Requires parse_csv_data and generate_analysis_code first."
    )
    param_model: ClassVar[type[BaseModel]] = ExecuteAnalysisCodeParams
    system_params: ClassVar[frozenset[str]] = frozenset({"code"})

    def __init__(self, sandbox: CodeSandbox, timeout: float = 30.0) -> None:
        self._sandbox = sandbox
        self._timeout = timeout

    async def execute(
        self, params: ExecuteAnalysisCodeParams, ctx: ExecutionContext
    ) -> ToolResult:
        if not params.code:
            logger.error("[%s] No analysis code to execute", ctx.trace_id)
            return ToolError(
                error="Internal error: analysis code is missing. Call generate_analysis_code first.",
                error_code=ErrorCode.INTERNAL_CODE_MISSING,
            )

        rows = ctx.get_parsed_data(params.dataset_id)
        if rows is None:
            return ToolError(
                error=(
                    f"Parsed data for dataset {params.dataset_id} is not available. "
                    "Run parse_csv_data first."
                ),
                error_code=ErrorCode.PARSED_DATA_MISSING,
            )

        try:
            ast.parse(params.code)
        except SyntaxError as e:
            return ToolError(
                error=f"Generated code is not valid Python: {e.msg} (line {e.lineno})",
                error_code=ErrorCode.CODE_GENERATION_INVALID,
            )

        logger.info("Executing analysis code on %d rows of %s", len(rows), params.dataset_id)
        outcome = await self._sandbox.run(params.code, rows, self._timeout)
        if not outcome.ok:
            return ToolError(
                error=f"Code execution failed: {outcome.error}",
                error_code=classify_sandbox_error(outcome.error or ""),
            )

        return ToolOk(result={"result": outcome.result}, artifacts={ANALYSIS_RESULT: outcome.result})

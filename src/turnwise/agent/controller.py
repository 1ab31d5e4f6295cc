"""Retry and refinement around a single tool call.

Every tool gets a bounded number of identical retries. Code execution
additionally gets a refinement loop: when the sandbox rejects the code,
new code is generated from the error and the original goal, and the
execution is attempted again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_fixed

from turnwise.agent.action import ToolCall
from turnwise.errors import NON_RETRYABLE_CODES, SANDBOX_ERROR_CODES, ErrorCode
from turnwise.session.emitter import EventEmitter
from turnwise.tool.base import ExecutionContext, ToolResult
from turnwise.tool.registry import ToolRegistry
from turnwise.tool.summary import format_tool_result_for_llm, summarize_tool_result
from turnwise.turn.state import TurnContext

logger = logging.getLogger(__name__)

EXECUTE_CODE_TOOL = "execute_analysis_code"
GENERATE_CODE_TOOL = "generate_analysis_code"


@dataclass
class ControllerOutcome:
    """Final result of a call after retries, plus whether it ends the turn."""

    result: ToolResult
    fatal: bool = False
    fatal_code: ErrorCode | None = None
    fatal_message: str = ""


def _should_retry(result: ToolResult) -> bool:
    return result.is_error and result.error_code not in NON_RETRYABLE_CODES


class RetryController:
    def __init__(
        self,
        registry: ToolRegistry,
        *,
        max_tool_retries: int = 1,
        max_refinement_attempts: int = 2,
        retry_backoff: float = 0.0,
    ) -> None:
        self.registry = registry
        self.max_tool_retries = max_tool_retries
        self.max_refinement_attempts = max(1, max_refinement_attempts)
        self.retry_backoff = retry_backoff

    async def run(
        self,
        call: ToolCall,
        turn: TurnContext,
        step_id: int,
        ctx: ExecutionContext,
        emitter: EventEmitter,
    ) -> ControllerOutcome:
        if call.name == EXECUTE_CODE_TOOL and call.name in self.registry:
            return await self._run_with_refinement(call, turn, step_id, ctx, emitter)
        result = await self.call_with_retries(call.name, call.args, turn, step_id, ctx)
        return ControllerOutcome(result=result)

    async def call_with_retries(
        self,
        name: str,
        args: dict[str, Any],
        turn: TurnContext,
        step_id: int,
        ctx: ExecutionContext,
        substituted: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Dispatch with identical arguments until success or the retry budget runs out.

        Returns the last attempt's result whatever it was.
        """

        async def _attempt() -> ToolResult:
            result = await self.registry.execute(name, args, ctx, substituted)
            if result.is_error:
                count = turn.increment_tool_error(name)
                logger.info(
                    "[%s] %s failed (%s, %d so far): %s",
                    ctx.trace_id,
                    name,
                    result.error_code.value if result.error_code else "?",
                    count,
                    result.error,
                )
            return result

        def _before_sleep(state: RetryCallState) -> None:
            attempt = turn.retry_step(step_id)
            logger.info("[%s] Retrying %s (attempt %d)", ctx.trace_id, name, attempt)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(1 + self.max_tool_retries),
            wait=wait_fixed(self.retry_backoff),
            retry=retry_if_result(_should_retry),
            before_sleep=_before_sleep,
            retry_error_callback=lambda state: state.outcome.result(),  # type: ignore[union-attr]
        )
        return await retrying(_attempt)

    async def _run_with_refinement(
        self,
        call: ToolCall,
        turn: TurnContext,
        step_id: int,
        ctx: ExecutionContext,
        emitter: EventEmitter,
    ) -> ControllerOutcome:
        attempt = 1
        while True:
            code = ctx.artifacts.analysis_code
            result = await self.registry.execute(
                call.name, call.args, ctx, {"code": code} if code else None
            )
            if not result.is_error:
                return ControllerOutcome(result=result)

            turn.increment_tool_error(call.name)
            if result.error_code not in SANDBOX_ERROR_CODES:
                # Not something new code can fix; the oracle decides what to do.
                return ControllerOutcome(result=result)

            if attempt >= self.max_refinement_attempts:
                logger.warning(
                    "[%s] Code execution failed %d times, giving up: %s",
                    ctx.trace_id,
                    attempt,
                    result.error,
                )
                return ControllerOutcome(
                    result=result,
                    fatal=True,
                    fatal_code=result.error_code,
                    fatal_message=f"Code execution failed after {attempt} attempts: {result.error}",
                )

            summary = f"Error (attempt {attempt}): {summarize_tool_result(result)}"
            turn.finish_step(
                step_id,
                summary,
                error=result.error,
                error_code=result.error_code,
                observation=format_tool_result_for_llm(call.name, result),
            )
            emitter.tool_finished(call.name, summary, result.error, result.error_code)

            regenerated = await self._regenerate(call, turn, ctx, emitter, str(result.error))
            if regenerated.is_error:
                return ControllerOutcome(
                    result=result,
                    fatal=True,
                    fatal_code=ErrorCode.CODE_REGENERATION_FAILED,
                    fatal_message=f"Code regeneration failed: {regenerated.error}",
                )

            attempt = turn.retry_step(step_id)
            emitter.tool_started(call.name, call.args)
            logger.info("[%s] Re-executing regenerated code (attempt %d)", ctx.trace_id, attempt)

    async def _regenerate(
        self,
        call: ToolCall,
        turn: TurnContext,
        ctx: ExecutionContext,
        emitter: EventEmitter,
        error: str,
    ) -> ToolResult:
        """Run code generation as its own step, committing the new code on success."""
        args = {
            "analysis_goal": _last_analysis_goal(turn),
            "dataset_id": call.args.get("dataset_id", ""),
            "previous_error": error,
        }
        step_id = turn.begin_step(GENERATE_CODE_TOOL, args)
        emitter.tool_started(GENERATE_CODE_TOOL, args)

        result = await self.call_with_retries(GENERATE_CODE_TOOL, args, turn, step_id, ctx)
        summary = summarize_tool_result(result)
        turn.finish_step(
            step_id,
            summary,
            error=result.error,
            error_code=result.error_code,
            observation=format_tool_result_for_llm(GENERATE_CODE_TOOL, result),
        )
        emitter.tool_finished(GENERATE_CODE_TOOL, summary, result.error, result.error_code)
        if not result.is_error:
            ctx.artifacts.update(result.artifacts)
        return result


def _last_analysis_goal(turn: TurnContext) -> str:
    """Goal of the most recent code generation, falling back to the user's query."""
    for step in reversed(turn.steps):
        if step.tool == GENERATE_CODE_TOOL:
            goal = step.args.get("analysis_goal")
            if isinstance(goal, str) and goal:
                return goal
    return turn.original_query

"""The turn loop: ask the oracle, act, record, repeat until the turn ends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from turnwise.agent.action import (
    ANSWER_TOOL,
    CLARIFY_TOOL,
    MAX_ITERATIONS_STEP,
    ClarificationRequest,
    FinalAnswer,
    OracleFailure,
    OracleReply,
    ToolCall,
)
from turnwise.agent.controller import RetryController
from turnwise.agent.oracle import OracleAdapter
from turnwise.errors import ErrorCode, TurnCancelled
from turnwise.session.emitter import EventEmitter, GuardedEmitter
from turnwise.tool.base import ExecutionContext
from turnwise.tool.registry import ToolRegistry
from turnwise.tool.summary import format_tool_result_for_llm, summarize_tool_result
from turnwise.turn.state import TurnContext, TurnStatus

logger = logging.getLogger(__name__)

MAX_AGENT_ITERATIONS = 10

T = TypeVar("T")


async def _await_cancellable(
    awaitable: Awaitable[T],
    cancel_event: asyncio.Event | None,
    timeout: float | None = None,
) -> T:
    """Await ``awaitable`` unless ``cancel_event`` fires or ``timeout`` passes first.

    Raises:
        TurnCancelled: The cancel event was set; the call was cancelled.
        TimeoutError: The timeout elapsed; the call was cancelled.
    """
    if cancel_event is None and timeout is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future[Any]] = {task}
    cancel_waiter: asyncio.Task[Any] | None = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except (asyncio.CancelledError, Exception):
        logger.debug("Abandoned call finished during cancellation", exc_info=True)

    if cancel_event is not None and cancel_event.is_set():
        raise TurnCancelled("Turn cancelled while a call was in flight")
    raise TimeoutError(f"Call did not finish within {timeout}s")


def _final_artifacts(turn: TurnContext) -> dict[str, Any]:
    artifacts = {
        "analysis_result": turn.artifacts.analysis_result,
        "report_code": turn.artifacts.report_code,
    }
    return {k: v for k, v in artifacts.items() if v is not None}


async def agent_loop(
    turn: TurnContext,
    oracle: OracleAdapter,
    registry: ToolRegistry,
    controller: RetryController,
    emitter: EventEmitter,
    ctx: ExecutionContext,
    *,
    max_iterations: int = MAX_AGENT_ITERATIONS,
    cancel_event: asyncio.Event | None = None,
    oracle_timeout: float | None = None,
) -> TurnStatus:
    """Run one turn to a terminal status.

    Each iteration makes exactly one oracle call and at most one tool call
    (plus its retries and code regenerations). The loop always returns:
    after ``max_iterations`` oracle calls the turn fails with
    MAX_ITERATIONS_REACHED.

    Args:
        turn: State of the turn, mutated in place.
        oracle: Produces the next action from the turn state.
        registry: Tools the oracle may call.
        controller: Retry and refinement policy around tool calls.
        emitter: Progress events; failures here never affect the turn.
        ctx: Per-turn data handed to tools. Shares ``turn.artifacts``.
        max_iterations: Oracle round-trips allowed.
        cancel_event: When set, the in-flight call is cancelled and the
            turn fails with CANCELLED.
        oracle_timeout: Seconds allowed per oracle call.
    """
    emitter = GuardedEmitter.wrap(emitter)

    try:
        for iteration in range(1, max_iterations + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise TurnCancelled("Turn cancelled before the next iteration")

            logger.info("[%s] Iteration %d/%d", ctx.trace_id, iteration, max_iterations)
            emitter.thinking_started()

            try:
                reply: OracleReply = await _await_cancellable(
                    oracle.next_action(turn, registry, emitter), cancel_event, oracle_timeout
                )
            except TimeoutError:
                logger.warning("[%s] Oracle timed out after %ss", ctx.trace_id, oracle_timeout)
                reply = OracleFailure(message=f"Oracle did not respond within {oracle_timeout}s")

            explanation = getattr(reply, "explanation", None)
            if explanation:
                emitter.explanation(explanation)

            if isinstance(reply, FinalAnswer):
                step_id = turn.begin_step(ANSWER_TOOL, {"textResponse": reply.text})
                turn.finish_step(step_id, "Final answer.")
                turn.set_final_answer(reply.text)
                emitter.final_answer(reply.text, _final_artifacts(turn))
                break

            if isinstance(reply, ClarificationRequest):
                step_id = turn.begin_step(CLARIFY_TOOL, {"question": reply.question})
                turn.finish_step(step_id, "Asked the user for clarification.")
                turn.request_clarification(reply.question)
                emitter.clarification_needed(reply.question)
                break

            if isinstance(reply, OracleFailure):
                turn.fail(reply.code, reply.message)
                emitter.error(turn.error.user_message, reply.code)  # type: ignore[union-attr]
                break

            await _run_tool_call(reply, turn, controller, emitter, ctx, cancel_event)
            if turn.is_finished:
                break
        else:
            logger.warning("[%s] Reached max iterations (%d)", ctx.trace_id, max_iterations)
            step_id = turn.begin_step(MAX_ITERATIONS_STEP)
            turn.finish_step(
                step_id,
                "Reached max iterations.",
                error=f"Agent reached maximum iterations ({max_iterations}).",
                error_code=ErrorCode.MAX_ITERATIONS_REACHED,
            )
            turn.fail(
                ErrorCode.MAX_ITERATIONS_REACHED,
                f"Agent reached maximum iterations ({max_iterations}).",
            )
            emitter.error(turn.error.user_message, ErrorCode.MAX_ITERATIONS_REACHED)  # type: ignore[union-attr]

    except TurnCancelled as e:
        logger.info("[%s] %s", ctx.trace_id, e)
        if not turn.is_finished:
            turn.fail(ErrorCode.CANCELLED, str(e))
            emitter.error(turn.error.user_message, ErrorCode.CANCELLED)  # type: ignore[union-attr]

    return turn.status


async def _run_tool_call(
    call: ToolCall,
    turn: TurnContext,
    controller: RetryController,
    emitter: EventEmitter,
    ctx: ExecutionContext,
    cancel_event: asyncio.Event | None,
) -> None:
    step_id = turn.begin_step(call.name, call.args)
    emitter.tool_started(call.name, call.args)

    try:
        outcome = await _await_cancellable(
            controller.run(call, turn, step_id, ctx, emitter), cancel_event
        )
    except TurnCancelled:
        turn.finish_step(
            step_id,
            "Cancelled.",
            error="Cancelled while the tool was running.",
            error_code=ErrorCode.CANCELLED,
        )
        raise

    result = outcome.result
    summary = summarize_tool_result(result)
    turn.finish_step(
        step_id,
        summary,
        error=result.error,
        error_code=result.error_code,
        observation=format_tool_result_for_llm(call.name, result),
    )
    emitter.tool_finished(call.name, summary, result.error, result.error_code)

    if not result.is_error:
        ctx.artifacts.update(result.artifacts)

    if outcome.fatal:
        code = outcome.fatal_code or result.error_code or ErrorCode.TOOL_WRAPPER_ERROR
        logger.error("[%s] %s ended the turn: %s", ctx.trace_id, call.name, outcome.fatal_message)
        turn.fail(code, outcome.fatal_message or str(result.error))
        emitter.error(turn.error.user_message, code)  # type: ignore[union-attr]

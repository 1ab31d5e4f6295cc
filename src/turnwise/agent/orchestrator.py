"""Turn orchestrator: seeds a turn, runs the loop and persists the record.

The orchestrator is the top-level controller for one user request:
1. Builds the turn state from the request (history, datasets, carried-over artifacts),
   summarizing older history once it exceeds the token budget
2. Runs the agent loop
3. Converts anything that escapes seeding or the loop into a terminal error
4. Persists the final record exactly once
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from turnwise.agent.controller import RetryController
from turnwise.agent.history import compact_history
from turnwise.agent.loop import agent_loop
from turnwise.agent.oracle import OracleAdapter
from turnwise.agent.prompt import PromptBuilder
from turnwise.config import AgentConfig
from turnwise.datasets import DatasetService
from turnwise.errors import ErrorCode
from turnwise.llm.message import Message
from turnwise.llm.provider import ChatProvider
from turnwise.session.emitter import EventEmitter, GuardedEmitter, NullEmitter
from turnwise.session.store import TurnStore
from turnwise.tool.base import ExecutionContext
from turnwise.tool.registry import ToolRegistry
from turnwise.turn.artifacts import (
    DATASET_SAMPLES,
    DATASET_SCHEMAS,
    PREVIOUS_ANALYSIS_RESULT,
    PREVIOUS_REPORT_CODE,
    ArtifactStore,
)
from turnwise.turn.state import TurnContext

logger = logging.getLogger(__name__)


@dataclass
class TurnSeed:
    """Everything a turn starts from."""

    query: str
    history: list[Message | dict[str, Any]] = field(default_factory=list)
    dataset_ids: list[str] = field(default_factory=list)
    dataset_schemas: dict[str, dict[str, Any]] = field(default_factory=dict)
    dataset_samples: dict[str, dict[str, Any]] = field(default_factory=dict)
    user_id: str | None = None
    team_id: str | None = None
    session_id: str | None = None
    user_context: str | None = None
    team_context: str | None = None
    previous_analysis_result: Any = None
    previous_report_code: str | None = None


class TurnOrchestrator:
    """Runs turns against one provider, tool registry and store.

    Holds no per-turn state; concurrent ``run`` calls are independent.
    """

    def __init__(
        self,
        provider: ChatProvider,
        registry: ToolRegistry,
        store: TurnStore,
        emitter: EventEmitter | None = None,
        config: AgentConfig | None = None,
        dataset_service: DatasetService | None = None,
        prompt_builder: PromptBuilder | None = None,
        summary_provider: ChatProvider | None = None,
    ) -> None:
        self.config = config or AgentConfig()
        self.summary_provider = summary_provider or provider
        self.registry = registry
        self.store = store
        self.emitter = emitter or NullEmitter()
        self.dataset_service = dataset_service
        self.oracle = OracleAdapter(
            provider,
            prompt_builder,
            allow_unknown_tools=self.config.route_unknown_tools,
        )
        self.controller = RetryController(
            registry,
            max_tool_retries=self.config.max_tool_retries,
            max_refinement_attempts=self.config.max_code_refinement_attempts,
            retry_backoff=self.config.retry_backoff,
        )

    async def run(
        self,
        seed: TurnSeed,
        turn_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> TurnContext:
        turn_id = turn_id or uuid.uuid4().hex
        trace_id = turn_id[:12]
        emitter = GuardedEmitter.wrap(self.emitter)

        logger.info("[%s] Turn started: %s", trace_id, seed.query[:80])
        emitter.turn_begin(seed.query)

        turn = TurnContext(seed.query)
        try:
            turn = await self._seed_turn(seed)
            ctx = ExecutionContext(
                user_id=seed.user_id,
                team_id=seed.team_id,
                session_id=seed.session_id,
                trace_id=trace_id,
                original_query=seed.query,
                artifacts=turn.artifacts,
            )
            await agent_loop(
                turn,
                self.oracle,
                self.registry,
                self.controller,
                emitter,
                ctx,
                max_iterations=self.config.max_iterations,
                cancel_event=cancel_event,
                oracle_timeout=self.config.oracle_timeout,
            )
        except asyncio.CancelledError:
            logger.info("[%s] Turn task cancelled", trace_id)
            if not turn.is_finished:
                turn.fail(ErrorCode.CANCELLED, "Turn task was cancelled")
            await asyncio.shield(self._persist(turn_id, turn))
            emitter.turn_end(turn.status.value)
            raise
        except Exception as e:
            logger.error("[%s] Turn crashed: %s", trace_id, e, exc_info=True)
            if not turn.is_finished:
                turn.fail(ErrorCode.AGENT_RUNNER_ERROR, f"{type(e).__name__}: {e}")
                emitter.error(turn.error.user_message, ErrorCode.AGENT_RUNNER_ERROR)  # type: ignore[union-attr]

        await self._persist(turn_id, turn)
        logger.info("[%s] Turn finished: %s", trace_id, turn.status.value)
        emitter.turn_end(turn.status.value)
        return turn

    async def _seed_turn(self, seed: TurnSeed) -> TurnContext:
        artifacts = ArtifactStore()
        schemas = dict(seed.dataset_schemas)
        samples = dict(seed.dataset_samples)

        if self.dataset_service is not None:
            for dataset_id in seed.dataset_ids:
                try:
                    if dataset_id not in schemas:
                        schemas[dataset_id] = await self.dataset_service.get_schema(dataset_id)
                    if dataset_id not in samples:
                        samples[dataset_id] = await self.dataset_service.get_sample(dataset_id)
                except Exception as e:
                    # The oracle can still call get_dataset_schema itself.
                    logger.warning("Could not preload dataset %s: %s", dataset_id, e)

        if schemas:
            artifacts.put(DATASET_SCHEMAS, schemas)
        if samples:
            artifacts.put(DATASET_SAMPLES, samples)
        if seed.previous_analysis_result is not None:
            artifacts.put(PREVIOUS_ANALYSIS_RESULT, seed.previous_analysis_result)
        if seed.previous_report_code:
            artifacts.put(PREVIOUS_REPORT_CODE, seed.previous_report_code)

        history = [m if isinstance(m, Message) else Message.from_history(m) for m in seed.history]
        history = await compact_history(
            history,
            self.summary_provider,
            token_limit=self.config.history_token_limit,
            keep_recent=self.config.history_keep_recent,
        )
        return TurnContext(
            seed.query,
            history=history,
            artifacts=artifacts,
            user_context=seed.user_context,
            team_context=seed.team_context,
        )

    async def _persist(self, turn_id: str, turn: TurnContext) -> None:
        try:
            await self.store.save(turn_id, turn.to_record())
        except Exception as e:
            logger.error("Failed to persist turn %s: %s", turn_id, e, exc_info=True)

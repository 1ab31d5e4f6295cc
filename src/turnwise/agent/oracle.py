"""Oracle adapter: one reasoning call in, one typed reply out."""

from __future__ import annotations

import logging

from turnwise.agent.action import OracleFailure, OracleReply
from turnwise.agent.parser import parse
from turnwise.agent.prompt import PromptBuilder
from turnwise.llm.provider import ChatProvider
from turnwise.llm.streaming import generate
from turnwise.session.emitter import EventEmitter
from turnwise.tool.registry import ToolRegistry
from turnwise.turn.state import TurnContext

logger = logging.getLogger(__name__)


class OracleAdapter:
    """Builds the prompt, streams the completion and parses it into an Action.

    Transport failures come back as ``OracleFailure`` rather than raising;
    cancellation is left to propagate.
    """

    def __init__(
        self,
        provider: ChatProvider,
        prompt_builder: PromptBuilder | None = None,
        *,
        allow_unknown_tools: bool = True,
    ) -> None:
        self.provider = provider
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.allow_unknown_tools = allow_unknown_tools

    async def next_action(
        self,
        turn: TurnContext,
        registry: ToolRegistry,
        emitter: EventEmitter,
    ) -> OracleReply:
        prompt = self.prompt_builder.build(turn.context_for_oracle(), registry.definitions())
        try:
            result = await generate(
                self.provider,
                prompt.system,
                prompt.messages,
                on_token=emitter.token,
            )
        except Exception as e:
            logger.error("Oracle call failed: %s", e, exc_info=True)
            return OracleFailure(message=f"Oracle call failed: {e}")

        if result.truncated:
            logger.warning("Oracle reply hit max_tokens; parsing what arrived")

        action = parse(result.text, registry.names(), allow_unknown=self.allow_unknown_tools)
        if action.thinking:
            logger.debug("Oracle thinking: %s", action.thinking)
        logger.info("Oracle chose %s", type(action).__name__)
        return action

"""Tool registry: register and dispatch tools."""

from __future__ import annotations

import logging
from typing import Any

from turnwise.agent.action import RESERVED_NAMES
from turnwise.errors import ErrorCode, ToolRegistrationError
from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Closed set of tools available to one orchestrator.

    Every ``execute`` call returns a ``ToolResult``; nothing a handler
    does escapes the dispatcher as an exception.
    """

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool instance."""
        if tool.name in RESERVED_NAMES:
            raise ToolRegistrationError(
                f"'{tool.name}' is a reserved action name and cannot be registered as a tool"
            )
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        self._tools[tool.name] = tool

    def register_many(self, tools: list[BaseTool]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def definitions(self) -> list[dict[str, Any]]:
        """Tool definitions for the prompt assembler."""
        return [t.definition() for t in self._tools.values()]

    def names(self) -> list[str]:
        return list(self._tools.keys())

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        ctx: ExecutionContext,
        substituted: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Dispatch a call by name.

        Args:
            name: Tool name chosen by the oracle.
            args: Arguments chosen by the oracle.
            ctx: Per-turn execution context.
            substituted: Engine-supplied arguments applied after validation.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.info("[%s] Unknown tool requested: %s", ctx.trace_id, name)
            return ToolError(
                error=f"Unknown tool: {name}. Available tools: {', '.join(self.names())}",
                error_code=ErrorCode.UNKNOWN_TOOL,
            )

        try:
            return await tool(args, ctx, substituted)
        except Exception as e:
            logger.error(
                "[%s] Tool %s raised: %s", ctx.trace_id, name, e, exc_info=True
            )
            return ToolError(
                error=f"Error executing {name}: {e}",
                error_code=ErrorCode.TOOL_WRAPPER_ERROR,
            )

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

"""Tool system: base classes, registry, and result summaries."""

from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolOk, ToolResult
from turnwise.tool.registry import ToolRegistry

__all__ = [
    "BaseTool",
    "ExecutionContext",
    "ToolError",
    "ToolOk",
    "ToolResult",
    "ToolRegistry",
]

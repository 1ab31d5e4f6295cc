"""Base tool classes with Pydantic parameter validation."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from turnwise.errors import ErrorCode
from turnwise.turn.artifacts import ArtifactStore

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class ToolResult:
    """Outcome of one tool invocation: a result payload or a tagged error.

    ``artifacts`` are producer-keyed values the loop commits to the turn's
    artifact store when the call succeeds.
    """

    result: Any = None
    error: str | None = None
    error_code: ErrorCode | None = None
    artifacts: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.error is not None:
            if self.result is not None:
                raise ValueError("ToolResult cannot carry both a result and an error")
            if self.error_code is None:
                raise ValueError("An error ToolResult needs an error_code")
        elif self.error_code is not None:
            raise ValueError("error_code given without an error message")

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Wire envelope: exactly one of ``result`` or ``error``/``errorCode``."""
        if self.is_error:
            return {"error": self.error, "errorCode": self.error_code.value}  # type: ignore[union-attr]
        return {"result": self.result}


@dataclass
class ToolOk(ToolResult):
    """Successful tool result."""


@dataclass
class ToolError(ToolResult):
    """Failed tool result."""

    error: str | None = "Tool failed"
    error_code: ErrorCode | None = ErrorCode.TOOL_WRAPPER_ERROR


@dataclass
class ExecutionContext:
    """Per-turn data handed to every tool call."""

    user_id: str | None = None
    team_id: str | None = None
    session_id: str | None = None
    trace_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    original_query: str = ""
    artifacts: ArtifactStore = field(default_factory=ArtifactStore)

    def get_parsed_data(self, dataset_id: str) -> list[dict[str, Any]] | None:
        return self.artifacts.parsed_data(dataset_id)

    @property
    def analysis_result(self) -> Any:
        return self.artifacts.analysis_result

    @property
    def dataset_schemas(self) -> dict[str, dict[str, Any]]:
        return self.artifacts.dataset_schemas


class BaseTool(ABC, Generic[T]):
    """Base class for all tools.

    Each tool declares its parameters as a Pydantic model (the type
    parameter T). Parameters listed in ``system_params`` are filled in by
    the engine and hidden from the oracle.

    Usage:
        class MyParams(BaseModel):
            dataset_id: str

        class MyTool(BaseTool[MyParams]):
            name = "my_tool"
            description = "Does something useful"
            param_model = MyParams

            async def execute(self, params: MyParams, ctx: ExecutionContext) -> ToolResult:
                return ToolOk(result={"done": True})
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]]
    system_params: ClassVar[frozenset[str]] = frozenset()

    async def __call__(
        self,
        arguments: dict[str, Any],
        ctx: ExecutionContext,
        substituted: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Validate the oracle's arguments, apply substitutions, execute.

        Exceptions raised by ``execute`` propagate to the dispatcher.
        """
        try:
            params = self.param_model.model_validate(arguments)
        except ValidationError as e:
            return ToolError(
                error=f"Invalid arguments for {self.name}: {_describe_validation(e)}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        if substituted:
            params = params.model_copy(update=substituted)

        return await self.execute(params, ctx)  # type: ignore[arg-type]

    @abstractmethod
    async def execute(self, params: T, ctx: ExecutionContext) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...

    def definition(self) -> dict[str, Any]:
        """Name, description and argument schema for the prompt."""
        schema = self.param_model.model_json_schema()
        # LLMs don't need the title and $defs that Pydantic adds.
        schema.pop("title", None)
        schema.pop("$defs", None)
        properties = schema.get("properties", {})
        for hidden in self.system_params:
            properties.pop(hidden, None)
        if "required" in schema:
            schema["required"] = [r for r in schema["required"] if r not in self.system_params]

        return {
            "name": self.name,
            "description": self.description,
            "parameters": schema,
        }


def _describe_validation(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        problems.append(f"{loc}: {item.get('msg', 'invalid')}")
    return "; ".join(problems)

"""List datasets tool."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel

from turnwise.datasets import DatasetService
from turnwise.tool.base import BaseTool, ExecutionContext, ToolOk, ToolResult


class ListDatasetsParams(BaseModel):
    pass


class ListDatasetsTool(BaseTool[ListDatasetsParams]):
    name: ClassVar[str] = "list_datasets"
    description: ClassVar[str] = "List the datasets available to the user (id, name, description)."
    param_model: ClassVar[type[BaseModel]] = ListDatasetsParams

    def __init__(self, datasets: DatasetService) -> None:
        self._datasets = datasets

    async def execute(self, params: ListDatasetsParams, ctx: ExecutionContext) -> ToolResult:
        infos = await self._datasets.list_datasets()
        return ToolOk(result=[info.to_dict() for info in infos])

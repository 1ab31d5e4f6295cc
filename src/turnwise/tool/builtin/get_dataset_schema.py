"""Dataset schema tool."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, Field

from turnwise.datasets import DatasetNotFound, DatasetService
from turnwise.errors import ErrorCode
from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolOk, ToolResult
from turnwise.turn.artifacts import DATASET_SCHEMAS

logger = logging.getLogger(__name__)


class GetDatasetSchemaParams(BaseModel):
    dataset_id: str = Field(description="Exact id of the dataset.")


class GetDatasetSchemaTool(BaseTool[GetDatasetSchemaParams]):
    """Fetch column names and types, and remember them for later steps."""

    name: ClassVar[str] = "get_dataset_schema"
    description: ClassVar[str] = (
        "Get the column names, types and description of a dataset. "
        "Only needed when the schema is not already listed."
    )
    param_model: ClassVar[type[BaseModel]] = GetDatasetSchemaParams

    def __init__(self, datasets: DatasetService) -> None:
        self._datasets = datasets

    async def execute(self, params: GetDatasetSchemaParams, ctx: ExecutionContext) -> ToolResult:
        try:
            schema = await self._datasets.get_schema(params.dataset_id)
        except DatasetNotFound as e:
            return ToolError(error=str(e), error_code=ErrorCode.DATASET_NOT_FOUND)
        except (OSError, ValueError) as e:
            logger.warning("Schema fetch failed for %s: %s", params.dataset_id, e)
            return ToolError(
                error=f"Could not read dataset {params.dataset_id}: {e}",
                error_code=ErrorCode.DATA_FETCH_FAILED,
            )

        schemas = {**ctx.dataset_schemas, params.dataset_id: schema}
        return ToolOk(result=schema, artifacts={DATASET_SCHEMAS: schemas})

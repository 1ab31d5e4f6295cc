"""Parse CSV data tool."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, Field

from turnwise.datasets import DatasetNotFound, DatasetService, parse_csv
from turnwise.errors import ErrorCode
from turnwise.tool.base import BaseTool, ExecutionContext, ToolError, ToolOk, ToolResult
from turnwise.turn.artifacts import parsed_data_key

logger = logging.getLogger(__name__)


class ParseCsvDataParams(BaseModel):
    dataset_id: str = Field(description="Exact id of the dataset to load.")


class ParseCsvDataTool(BaseTool[ParseCsvDataParams]):
    """Load a dataset's rows into the turn so analysis code can use them.

    The rows themselves never go back to the oracle; only a count does.
    """

    name: ClassVar[str] = "parse_csv_data"
    description: ClassVar[str] = (
        "Load and parse a dataset's CSV rows. Required before execute_analysis_code."
    )
    param_model: ClassVar[type[BaseModel]] = ParseCsvDataParams

    def __init__(self, datasets: DatasetService) -> None:
        self._datasets = datasets

    async def execute(self, params: ParseCsvDataParams, ctx: ExecutionContext) -> ToolResult:
        dataset_id = params.dataset_id
        try:
            text = await self._datasets.read_text(dataset_id)
        except DatasetNotFound as e:
            return ToolError(error=str(e), error_code=ErrorCode.DATASET_NOT_FOUND)
        except OSError as e:
            logger.warning("Reading %s failed: %s", dataset_id, e)
            return ToolError(
                error=f"Could not fetch dataset {dataset_id}: {e}",
                error_code=ErrorCode.DATA_FETCH_FAILED,
            )

        try:
            rows = parse_csv(text)
        except (ValueError, UnicodeError) as e:
            return ToolError(
                error=f"Could not parse dataset {dataset_id}: {e}",
                error_code=ErrorCode.CSV_PARSE_ERROR,
            )

        logger.info("Parsed %d rows from %s", len(rows), dataset_id)
        return ToolOk(
            result={
                "summary": f"Successfully parsed {len(rows)} rows from dataset {dataset_id}.",
                "row_count": len(rows),
            },
            artifacts={parsed_data_key(dataset_id): rows},
        )

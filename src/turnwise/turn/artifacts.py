"""Intermediate results produced by tools and reused later in a turn."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

ANALYSIS_CODE = "analysis_code"
ANALYSIS_RESULT = "analysis_result"
REPORT_CODE = "report_code"
DATASET_SCHEMAS = "dataset_schemas"
DATASET_SAMPLES = "dataset_samples"
PREVIOUS_ANALYSIS_RESULT = "previous_analysis_result"
PREVIOUS_REPORT_CODE = "previous_report_code"

_PARSED_DATA_PREFIX = "parsed_data:"


def parsed_data_key(dataset_id: str) -> str:
    return f"{_PARSED_DATA_PREFIX}{dataset_id}"


class ArtifactStore:
    """Producer-keyed cache of tool outputs.

    A key holds the latest value written to it; writing again replaces
    the old value. Only successful tool results are committed here.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def put(self, key: str, value: Any) -> None:
        if key in self._values:
            logger.debug("Overwriting artifact %s", key)
        self._values[key] = value

    def update(self, values: dict[str, Any]) -> None:
        for key, value in values.items():
            self.put(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def keys(self) -> list[str]:
        return list(self._values)

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    # --- Typed accessors ---

    def parsed_data(self, dataset_id: str) -> list[dict[str, Any]] | None:
        return self._values.get(parsed_data_key(dataset_id))

    @property
    def analysis_code(self) -> str | None:
        return self._values.get(ANALYSIS_CODE)

    @property
    def analysis_result(self) -> Any:
        return self._values.get(ANALYSIS_RESULT)

    @property
    def report_code(self) -> str | None:
        return self._values.get(REPORT_CODE)

    @property
    def dataset_schemas(self) -> dict[str, dict[str, Any]]:
        return self._values.get(DATASET_SCHEMAS) or {}

    @property
    def dataset_samples(self) -> dict[str, dict[str, Any]]:
        return self._values.get(DATASET_SAMPLES) or {}

    def report_analysis_data(self) -> Any:
        """Analysis data backing a report: this turn's result, else the carried-over one."""
        result = self.analysis_result
        if result is None:
            result = self._values.get(PREVIOUS_ANALYSIS_RESULT)
        return result

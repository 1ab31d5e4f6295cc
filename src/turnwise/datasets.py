"""Dataset access: listing, schemas and row loading for CSV-backed datasets."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiofiles

from turnwise.errors import TurnwiseError

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5


class DatasetNotFound(TurnwiseError):
    """No dataset with the requested id exists."""


@dataclass
class DatasetInfo:
    id: str
    name: str
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


@runtime_checkable
class DatasetService(Protocol):
    async def list_datasets(self) -> list[DatasetInfo]: ...

    async def get_schema(self, dataset_id: str) -> dict[str, Any]: ...

    async def get_sample(self, dataset_id: str, limit: int = SAMPLE_ROWS) -> dict[str, Any]: ...

    async def read_text(self, dataset_id: str) -> str: ...


def parse_csv(text: str) -> list[dict[str, Any]]:
    """Parse CSV text with a header row into typed row dicts.

    Raises ``ValueError`` when the text has no header or a row has more
    fields than the header.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if not reader.fieldnames:
        raise ValueError("CSV has no header row")

    rows: list[dict[str, Any]] = []
    for line_no, raw in enumerate(reader, start=2):
        if None in raw:
            raise ValueError(f"Row {line_no} has more fields than the header")
        rows.append({k: _coerce(v) for k, v in raw.items()})
    return rows


def infer_columns(rows: list[dict[str, Any]]) -> list[dict[str, str]]:
    if not rows:
        return []
    columns = []
    for name in rows[0]:
        types = {_type_name(row.get(name)) for row in rows if row.get(name) is not None}
        if not types:
            kind = "unknown"
        elif types == {"integer"}:
            kind = "integer"
        elif types <= {"integer", "number"}:
            kind = "number"
        elif len(types) == 1:
            kind = types.pop()
        else:
            kind = "string"
        columns.append({"name": name, "type": kind})
    return columns


def _coerce(value: str | None) -> Any:
    if value is None:
        return None
    stripped = value.strip()
    if stripped == "":
        return None
    lowered = stripped.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return stripped


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    return "string"


class LocalDatasetService:
    """Serves every ``*.csv`` file in a directory; the file stem is the id."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def _path(self, dataset_id: str) -> Path:
        path = self.directory / f"{dataset_id}.csv"
        # Ids are bare file stems; reject anything that resolves elsewhere.
        if path.parent.resolve() != self.directory.resolve() or not path.is_file():
            raise DatasetNotFound(f"Dataset not found: {dataset_id}")
        return path

    async def list_datasets(self) -> list[DatasetInfo]:
        if not self.directory.is_dir():
            logger.warning("Dataset directory %s does not exist", self.directory)
            return []
        return [
            DatasetInfo(id=p.stem, name=p.stem.replace("_", " ").title())
            for p in sorted(self.directory.glob("*.csv"))
        ]

    async def read_text(self, dataset_id: str) -> str:
        path = self._path(dataset_id)
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()

    async def get_schema(self, dataset_id: str) -> dict[str, Any]:
        rows = parse_csv(await self.read_text(dataset_id))
        return {
            "name": dataset_id.replace("_", " ").title(),
            "description": "",
            "columns": infer_columns(rows),
            "row_count": len(rows),
        }

    async def get_sample(self, dataset_id: str, limit: int = SAMPLE_ROWS) -> dict[str, Any]:
        rows = parse_csv(await self.read_text(dataset_id))
        return {"rows": rows[:limit], "total_rows": len(rows)}

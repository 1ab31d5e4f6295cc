"""Turn record persistence.

A store keeps the latest snapshot per turn id. Durability is best effort:
the JSONL store appends every save and readers take the last line for a
given id.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiofiles

logger = logging.getLogger(__name__)


@runtime_checkable
class TurnStore(Protocol):
    async def save(self, turn_id: str, record: dict[str, Any]) -> None: ...


class MemoryTurnStore:
    """In-process store; keeps every save for inspection."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.saves: list[tuple[str, dict[str, Any]]] = []

    async def save(self, turn_id: str, record: dict[str, Any]) -> None:
        self.saves.append((turn_id, record))
        self.records[turn_id] = record

    async def load(self, turn_id: str) -> dict[str, Any] | None:
        return self.records.get(turn_id)


class JsonlTurnStore:
    """Append-only JSONL file of ``{"turn_id": ..., "record": ...}`` lines."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def save(self, turn_id: str, record: dict[str, Any]) -> None:
        line = json.dumps({"turn_id": turn_id, "record": record}, default=str)
        async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
            await f.write(line + "\n")

    async def load(self, turn_id: str) -> dict[str, Any] | None:
        """Latest record saved for ``turn_id``."""
        if not self.path.exists():
            return None

        latest: dict[str, Any] | None = None
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            async for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt line in %s", self.path)
                    continue
                if data.get("turn_id") == turn_id:
                    latest = data.get("record")
        return latest

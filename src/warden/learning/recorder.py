"""LearningRecorder: write-only, append-only store of learning records.

Agents receive a recorder through their constructor. Downstream tooling
reads the records; the core only writes them. A failing recorder must
never fail an action, so ``BaseAgent`` wraps every call and logs errors.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from warden.core.errors import CollaboratorError
from warden.core.history import BoundedHistory
from warden.models import _utc_now
from warden.utils.logging import get_logger

log = get_logger(__name__)


class LearningRecord(BaseModel, frozen=True):
    """One ``(category, payload, timestamp)`` entry."""

    category: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utc_now)


@runtime_checkable
class LearningRecorder(Protocol):
    async def record(self, category: str, payload: dict[str, Any]) -> None: ...


class InMemoryLearningStore:
    """Bounded in-process store. Default recorder and test double."""

    def __init__(self, maxlen: int = 10_000) -> None:
        self._records: BoundedHistory[LearningRecord] = BoundedHistory(maxlen)

    async def record(self, category: str, payload: dict[str, Any]) -> None:
        self._records.append(LearningRecord(category=category, payload=dict(payload)))

    @property
    def records(self) -> list[LearningRecord]:
        return self._records.snapshot()

    def by_category(self, category: str) -> list[LearningRecord]:
        return [r for r in self._records if r.category == category]

    def __len__(self) -> int:
        return len(self._records)


class JsonlLearningStore:
    """Appends one JSON line per record to ``path``.

    File I/O runs in a worker thread; concurrent writers in one process
    are serialized by a lock.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def record(self, category: str, payload: dict[str, Any]) -> None:
        entry = LearningRecord(category=category, payload=dict(payload))
        line = entry.model_dump_json() + "\n"
        async with self._lock:
            try:
                await asyncio.to_thread(self._append, line)
            except OSError as exc:
                raise CollaboratorError(
                    f"learning record not written: {exc}",
                    details={"path": str(self._path), "category": category},
                ) from exc

    def _append(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(line)

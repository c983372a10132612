"""Report/document store: write-only, best-effort persistence."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel

from warden.core.errors import CollaboratorError
from warden.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class ReportStore(Protocol):
    async def save(self, kind: str, report_id: str, report: BaseModel) -> str: ...


class JsonReportStore:
    """Writes each report as ``<root>/<kind>/<report_id>.json``.

    Returns the written path as the storage reference.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    async def save(self, kind: str, report_id: str, report: BaseModel) -> str:
        path = self._root / kind / f"{report_id}.json"
        payload = report.model_dump_json(indent=2)
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as exc:
            raise CollaboratorError(
                f"report not written: {exc}",
                details={"path": str(path), "kind": kind},
            ) from exc
        log.info("report_saved", kind=kind, report_id=report_id, path=str(path))
        return str(path)

    @staticmethod
    def _write(path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(path)

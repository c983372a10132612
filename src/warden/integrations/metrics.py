"""Read side of the metrics store, used by InsightAgent's analyses.

Every method returns None when the source has no data of that kind; the
agent then fails the action rather than inventing numbers.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from warden.core.errors import CollaboratorError
from warden.models import KPIMetrics


@runtime_checkable
class MetricsSource(Protocol):
    async def current_kpis(self) -> KPIMetrics | None: ...

    async def user_events(self) -> list[dict[str, Any]] | None: ...

    async def cost_items(self) -> list[dict[str, Any]] | None: ...

    async def performance_samples(self) -> list[dict[str, Any]] | None: ...

    async def security_findings(self) -> list[dict[str, Any]] | None: ...


class EmptyMetricsSource:
    """No data at all. Analyses must get their input from the payload."""

    async def current_kpis(self) -> KPIMetrics | None:
        return None

    async def user_events(self) -> list[dict[str, Any]] | None:
        return None

    async def cost_items(self) -> list[dict[str, Any]] | None:
        return None

    async def performance_samples(self) -> list[dict[str, Any]] | None:
        return None

    async def security_findings(self) -> list[dict[str, Any]] | None:
        return None


class JsonMetricsSource:
    """Reads a JSON export with the keys ``kpis``, ``events``, ``costs``,
    ``performance`` and ``security``. The file is re-read on every call.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    async def _section(self, key: str) -> Any:
        try:
            raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
            data = json.loads(raw)
        except (OSError, ValueError) as exc:
            raise CollaboratorError(
                f"metrics export unreadable: {exc}",
                details={"path": str(self._path)},
            ) from exc
        return data.get(key) if isinstance(data, dict) else None

    async def current_kpis(self) -> KPIMetrics | None:
        data = await self._section("kpis")
        return KPIMetrics.model_validate(data) if data else None

    async def user_events(self) -> list[dict[str, Any]] | None:
        return await self._section("events")

    async def cost_items(self) -> list[dict[str, Any]] | None:
        return await self._section("costs")

    async def performance_samples(self) -> list[dict[str, Any]] | None:
        return await self._section("performance")

    async def security_findings(self) -> list[dict[str, Any]] | None:
        return await self._section("security")

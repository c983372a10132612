"""Issue/alert sink: best-effort notification of critical findings."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from warden.models import Alert, Severity
from warden.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class AlertSink(Protocol):
    async def send(self, alert: Alert) -> None: ...


class LoggingAlertSink:
    """Default sink: emits the alert as a structured log event."""

    async def send(self, alert: Alert) -> None:
        level = "critical" if alert.severity == Severity.CRITICAL else "warning"
        getattr(log, level)(
            "alert_raised",
            source=alert.source,
            severity=alert.severity.value,
            title=alert.title,
            details=alert.details,
        )


class CollectingAlertSink:
    """Keeps every alert in memory for later inspection."""

    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    async def send(self, alert: Alert) -> None:
        self.alerts.append(alert)


async def send_best_effort(sink: AlertSink, alert: Alert) -> bool:
    """Deliver ``alert``; a failing sink is logged, never raised."""
    try:
        await sink.send(alert)
    except Exception as exc:
        log.warning("alert_delivery_failed", source=alert.source, title=alert.title, error=str(exc))
        return False
    return True

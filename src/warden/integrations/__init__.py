"""Boundary contracts to external collaborators."""

from warden.integrations.alerts import (
    AlertSink,
    CollectingAlertSink,
    LoggingAlertSink,
    send_best_effort,
)
from warden.integrations.commands import CommandRunner, SubprocessCommandRunner
from warden.integrations.metrics import EmptyMetricsSource, JsonMetricsSource, MetricsSource
from warden.integrations.stores import JsonReportStore, ReportStore

__all__ = [
    "AlertSink",
    "CollectingAlertSink",
    "CommandRunner",
    "EmptyMetricsSource",
    "JsonMetricsSource",
    "JsonReportStore",
    "LoggingAlertSink",
    "MetricsSource",
    "ReportStore",
    "SubprocessCommandRunner",
    "send_best_effort",
]

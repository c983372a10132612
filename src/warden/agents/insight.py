"""InsightAgent: KPI analysis, trend prediction and optimization ranking.

Holds a bounded window of KPI snapshots. Suggestions are ranked by
leverage (impact / effort), not raw impact. ``generate_insights`` only
aggregates what earlier analyses produced.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from warden.analysis import analytics
from warden.config import AlertThresholds, RecommendationThresholds, WardenConfig
from warden.core.agent import BaseAgent, handles
from warden.core.errors import AgentMisconfigured, ExecutionFailed
from warden.core.history import BoundedHistory
from warden.integrations.alerts import AlertSink, LoggingAlertSink, send_best_effort
from warden.integrations.metrics import EmptyMetricsSource, MetricsSource
from warden.learning.recorder import LearningRecorder
from warden.models import (
    AgentAction,
    AgentConfig,
    Alert,
    AlertLevel,
    InsightSummary,
    KPIAnalysis,
    KPIMetrics,
    OptimizationSuggestion,
    Outcome,
    Severity,
    TrendPrediction,
)
from warden.utils.logging import get_logger

log = get_logger(__name__)


class InsightAction(StrEnum):
    ANALYZE_KPIS = "analyze_kpis"
    SUGGEST_OPTIMIZATIONS = "suggest_optimizations"
    PREDICT_TRENDS = "predict_trends"
    ANALYZE_USER_BEHAVIOR = "analyze_user_behavior"
    ANALYZE_COSTS = "analyze_costs"
    ANALYZE_PERFORMANCE = "analyze_performance"
    ANALYZE_SECURITY = "analyze_security"
    GENERATE_INSIGHTS = "generate_insights"


NO_DATA_EXPORT_WITHOUT_ANONYMIZATION = "no_data_export_without_anonymization"
NO_ANALYSIS_WITHOUT_PERMISSION = "no_analysis_without_permission"
PRESERVE_USER_PRIVACY = "preserve_user_privacy"


def default_insight_config() -> AgentConfig:
    return AgentConfig(
        name="insight",
        capabilities=frozenset(InsightAction),
        safety_constraints=(
            NO_DATA_EXPORT_WITHOUT_ANONYMIZATION,
            NO_ANALYSIS_WITHOUT_PERMISSION,
            PRESERVE_USER_PRIVACY,
        ),
        constraint_scopes={
            NO_DATA_EXPORT_WITHOUT_ANONYMIZATION: frozenset(
                {InsightAction.ANALYZE_USER_BEHAVIOR, InsightAction.GENERATE_INSIGHTS}
            ),
            NO_ANALYSIS_WITHOUT_PERMISSION: frozenset(
                {InsightAction.ANALYZE_KPIS, InsightAction.ANALYZE_USER_BEHAVIOR}
            ),
            PRESERVE_USER_PRIVACY: frozenset({InsightAction.ANALYZE_USER_BEHAVIOR}),
        },
        learning_rate=0.15,
        max_retries=2,
    )


class InsightAgent(BaseAgent):
    """Turns KPI snapshots and usage records into ranked, actionable insight."""

    actions = InsightAction

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        settings: WardenConfig | None = None,
        recorder: LearningRecorder | None = None,
        source: MetricsSource | None = None,
        alerts: AlertSink | None = None,
    ) -> None:
        super().__init__(config or default_insight_config(), settings=settings, recorder=recorder)
        insight = self.settings.insight
        problems = analytics.validate_weights(insight.weights)
        if problems:
            raise AgentMisconfigured(
                "invalid KPI weights",
                details={"agent": self.name, "problems": problems},
            )
        self._insight = insight
        self._weights = dict(insight.weights)
        self._alert_thresholds = insight.alert_thresholds.model_copy()
        self._recommendation_thresholds = insight.recommendation_thresholds.model_copy()
        self._source: MetricsSource = source or EmptyMetricsSource()
        self._alerts: AlertSink = alerts or LoggingAlertSink()

        self._kpi_history: BoundedHistory[KPIMetrics] = BoundedHistory(
            self.settings.retention.kpi_window
        )
        self._latest_analysis: KPIAnalysis | None = None
        self._predictions: dict[str, TrendPrediction] = {}
        self._suggestions: list[OptimizationSuggestion] = []

    # ------------------------------------------------------------------
    # State & configuration
    # ------------------------------------------------------------------

    @property
    def kpi_history(self) -> list[KPIMetrics]:
        return self._kpi_history.snapshot()

    @property
    def latest_analysis(self) -> KPIAnalysis | None:
        return self._latest_analysis

    @property
    def suggestions(self) -> list[OptimizationSuggestion]:
        return list(self._suggestions)

    @property
    def alert_thresholds(self) -> AlertThresholds:
        return self._alert_thresholds

    def set_alert_thresholds(self, **thresholds: float) -> AlertThresholds:
        """Replace individual alert thresholds at runtime."""
        unknown = set(thresholds) - set(AlertThresholds.model_fields)
        if unknown:
            raise ValueError(f"unknown alert thresholds: {sorted(unknown)}")
        self._alert_thresholds = AlertThresholds.model_validate(
            {**self._alert_thresholds.model_dump(), **thresholds}
        )
        log.info("alert_thresholds_updated", **self._alert_thresholds.model_dump())
        return self._alert_thresholds

    def set_recommendation_thresholds(self, **thresholds: float) -> RecommendationThresholds:
        unknown = set(thresholds) - set(RecommendationThresholds.model_fields)
        if unknown:
            raise ValueError(f"unknown recommendation thresholds: {sorted(unknown)}")
        self._recommendation_thresholds = RecommendationThresholds.model_validate(
            {**self._recommendation_thresholds.model_dump(), **thresholds}
        )
        return self._recommendation_thresholds

    def record_snapshot(self, metrics: KPIMetrics) -> None:
        """Seed the KPI window without running an analysis (imports, tests)."""
        self._kpi_history.append(metrics)

    # ------------------------------------------------------------------
    # Safety constraints
    # ------------------------------------------------------------------

    def check_safety_constraint(self, name: str, action: AgentAction) -> bool:
        payload = action.payload
        if name == NO_DATA_EXPORT_WITHOUT_ANONYMIZATION:
            if payload.get("export_data"):
                return payload.get("anonymized") is True
            return True
        if name == NO_ANALYSIS_WITHOUT_PERMISSION:
            return payload.get("has_permission") is True
        if name == PRESERVE_USER_PRIVACY:
            if payload.get("anonymized") is True:
                return True
            pii = set(self._insight.pii_fields)
            return not any(
                isinstance(event, dict) and any(event.get(key) for key in pii)
                for event in payload.get("events") or []
            )
        return True

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    @handles(InsightAction.ANALYZE_KPIS)
    async def _analyze_kpis(self, action: AgentAction) -> Outcome:
        metrics = await self._current_metrics(action.payload)
        previous = self._kpi_history.last()
        self._kpi_history.append(metrics)

        alerts = analytics.kpi_alerts(metrics, self._alert_thresholds)
        analysis = KPIAnalysis(
            metrics=metrics,
            overall_score=analytics.overall_score(
                metrics, self._weights, self._insight.page_load_budget_seconds
            ),
            trends=analytics.percent_trends(previous, metrics),
            alerts=alerts,
            recommendations=analytics.kpi_recommendations(metrics, self._recommendation_thresholds),
        )
        self._latest_analysis = analysis

        for alert in alerts:
            if alert.level == AlertLevel.CRITICAL:
                await send_best_effort(
                    self._alerts,
                    Alert(
                        source=self.name,
                        severity=Severity.CRITICAL,
                        title=alert.message,
                        details={"metric": alert.metric, "value": alert.value},
                    ),
                )

        await self.record_learning(
            "kpi_analysis",
            {
                "agent": self.name,
                "overall_score": analysis.overall_score,
                "metrics": metrics.values(),
                "alerts": len(alerts),
            },
        )
        log.info(
            "kpis_analyzed",
            overall_score=analysis.overall_score,
            alerts=len(alerts),
            window=len(self._kpi_history),
        )
        return Outcome(success=True, detail=analysis)

    @handles(InsightAction.SUGGEST_OPTIMIZATIONS)
    async def _suggest_optimizations(self, action: AgentAction) -> Outcome:
        candidates: list[OptimizationSuggestion] = []
        if self._latest_analysis is not None:
            candidates.extend(
                analytics.suggestions_for(
                    self._latest_analysis.metrics, self._recommendation_thresholds
                )
            )
        for raw in action.payload.get("candidates") or []:
            try:
                candidates.append(OptimizationSuggestion.model_validate(raw))
            except ValidationError as exc:
                log.warning("suggestion_candidate_invalid", error=str(exc)[:200])

        self._suggestions = analytics.rank_suggestions(candidates)
        return Outcome(
            success=True,
            detail=self._suggestions,
            message=f"{len(self._suggestions)} suggestions ranked",
        )

    @handles(InsightAction.PREDICT_TRENDS)
    async def _predict_trends(self, action: AgentAction) -> Outcome:
        horizon = int(action.payload.get("horizon", self._insight.prediction_horizon))
        if horizon < 1:
            raise ExecutionFailed(f"horizon must be >= 1, got {horizon}")
        self._predictions = analytics.predict(self._kpi_history.snapshot(), horizon)
        if not self._predictions:
            return Outcome(
                success=True,
                detail={},
                message=f"insufficient history ({len(self._kpi_history)} of 3 snapshots)",
            )
        return Outcome(success=True, detail=self._predictions)

    @handles(InsightAction.ANALYZE_USER_BEHAVIOR)
    async def _analyze_user_behavior(self, action: AgentAction) -> Outcome:
        events = await self._records(action.payload, "events", self._source.user_events)
        return Outcome(success=True, detail=analytics.summarize_behavior(events))

    @handles(InsightAction.ANALYZE_COSTS)
    async def _analyze_costs(self, action: AgentAction) -> Outcome:
        items = await self._records(action.payload, "costs", self._source.cost_items)
        summary = analytics.summarize_costs(
            items,
            active_users=action.payload.get("active_users"),
            previous_total=action.payload.get("previous_total"),
        )
        return Outcome(success=True, detail=summary)

    @handles(InsightAction.ANALYZE_PERFORMANCE)
    async def _analyze_performance(self, action: AgentAction) -> Outcome:
        samples = await self._records(action.payload, "samples", self._source.performance_samples)
        summary = analytics.summarize_performance(
            samples, window_minutes=action.payload.get("window_minutes")
        )
        return Outcome(success=True, detail=summary)

    @handles(InsightAction.ANALYZE_SECURITY)
    async def _analyze_security(self, action: AgentAction) -> Outcome:
        findings = await self._records(action.payload, "findings", self._source.security_findings)
        return Outcome(success=True, detail=analytics.summarize_security(findings))

    @handles(InsightAction.GENERATE_INSIGHTS)
    async def _generate_insights(self, action: AgentAction) -> Outcome:
        latest = self._latest_analysis
        summary = InsightSummary(
            overall_health=latest.overall_score if latest is not None else None,
            trend_direction=analytics.overall_trend(self._predictions),
            priority_actions=self._suggestions[: self._insight.top_n],
            kpi_analysis=latest,
            predictions=self._predictions,
        )
        return Outcome(success=True, detail=summary)

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    async def _current_metrics(self, payload: dict[str, Any]) -> KPIMetrics:
        raw = payload.get("metrics")
        if raw is not None:
            try:
                return KPIMetrics.model_validate(raw)
            except ValidationError as exc:
                raise ExecutionFailed(f"invalid KPI metrics: {exc}") from exc
        metrics = await self._source.current_kpis()
        if metrics is None:
            raise ExecutionFailed("no KPI metrics in payload or metrics source")
        return metrics

    async def _records(
        self,
        payload: dict[str, Any],
        key: str,
        fetch: Callable[[], Awaitable[list[dict[str, Any]] | None]],
    ) -> list[dict[str, Any]]:
        records = payload.get(key)
        if records is None:
            records = await fetch()
        if records is None:
            raise ExecutionFailed(f"no '{key}' in payload or metrics source")
        return list(records)

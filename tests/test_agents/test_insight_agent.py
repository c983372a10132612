"""Tests for InsightAgent: KPI analysis, trends, suggestions, summaries.

Covers:
  - Percent trends between consecutive snapshots
  - Prediction needs three snapshots and never fabricates numbers
  - Suggestions ranked by impact/effort
  - Permission and privacy constraints on analyses
  - Critical KPI alerts reach the alert sink
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from warden.agents.insight import InsightAgent
from warden.config import InsightConfig, WardenConfig
from warden.core.errors import AgentMisconfigured
from warden.integrations.metrics import JsonMetricsSource
from warden.models import (
    ActionStatus,
    AgentAction,
    KPIAnalysis,
    KPIMetrics,
    Severity,
    TrendDirection,
)

HEALTHY = {
    "user_engagement": 0.8,
    "conversion_rate": 0.12,
    "page_load_time": 1.5,
    "error_rate": 0.02,
    "cost_efficiency": 0.9,
    "security_score": 0.95,
}


def _metrics(**overrides: float) -> dict[str, float]:
    return {**HEALTHY, **overrides}


def _action(action_type: str, **payload) -> AgentAction:
    return AgentAction(type=action_type, payload=payload, requested_by="analyst")


@pytest.fixture()
def agent(settings, recorder, alerts) -> InsightAgent:
    return InsightAgent(settings=settings, recorder=recorder, alerts=alerts)


async def _analyze(agent: InsightAgent, **overrides: float) -> KPIAnalysis:
    result = await agent.execute(
        _action("analyze_kpis", has_permission=True, metrics=_metrics(**overrides))
    )
    assert result.success, result.message
    return result.detail


class TestAnalyzeKpis:
    @pytest.mark.asyncio
    async def test_error_rate_trend(self, agent: InsightAgent) -> None:
        first = await _analyze(agent, error_rate=0.02)
        second = await _analyze(agent, error_rate=0.08)

        assert first.trends["error_rate"] is None
        assert second.trends["error_rate"] == pytest.approx(300.0)
        assert second.trends["user_engagement"] == pytest.approx(0.0)
        assert len(agent.kpi_history) == 2

    @pytest.mark.asyncio
    async def test_healthy_metrics(self, agent: InsightAgent, recorder) -> None:
        analysis = await _analyze(agent)

        assert 0.0 < analysis.overall_score <= 1.0
        assert analysis.alerts == []
        assert analysis.recommendations == []
        assert recorder.by_category("kpi_analysis")

    @pytest.mark.asyncio
    async def test_critical_error_rate_raises_alert(self, agent, alerts) -> None:
        analysis = await _analyze(agent, error_rate=0.2, page_load_time=6.0)

        assert {a.metric for a in analysis.alerts} == {"error_rate", "page_load_time"}
        # Only critical KPI alerts are escalated
        assert [a.severity for a in alerts.alerts] == [Severity.CRITICAL]
        assert len(analysis.recommendations) == 2

    @pytest.mark.asyncio
    async def test_requires_permission(self, agent: InsightAgent) -> None:
        result = await agent.execute(_action("analyze_kpis", metrics=_metrics()))
        assert result.status == ActionStatus.DENIED
        assert result.denied_by == "no_analysis_without_permission"
        assert agent.kpi_history == []

    @pytest.mark.asyncio
    async def test_invalid_metrics_fail(self, agent: InsightAgent) -> None:
        result = await agent.execute(
            _action("analyze_kpis", has_permission=True, metrics={"error_rate": -1})
        )
        assert result.status == ActionStatus.FAILED
        assert "invalid KPI metrics" in result.message

    @pytest.mark.asyncio
    async def test_metrics_from_source(self, settings, tmp_path: Path) -> None:
        export = tmp_path / "metrics.json"
        export.write_text(json.dumps({"kpis": HEALTHY}))
        agent = InsightAgent(settings=settings, source=JsonMetricsSource(export))

        result = await agent.execute(_action("analyze_kpis", has_permission=True))

        assert result.success
        assert result.detail.metrics.error_rate == 0.02

    @pytest.mark.asyncio
    async def test_no_metrics_anywhere(self, agent: InsightAgent) -> None:
        result = await agent.execute(_action("analyze_kpis", has_permission=True))
        assert not result.success
        assert "no KPI metrics" in result.message

    @pytest.mark.asyncio
    async def test_runtime_thresholds(self, agent, alerts) -> None:
        agent.set_alert_thresholds(error_rate_critical=0.01)
        await _analyze(agent, error_rate=0.02)
        assert len(alerts.alerts) == 1

        with pytest.raises(ValueError, match="unknown alert thresholds"):
            agent.set_alert_thresholds(latency=3.0)


class TestPredictTrends:
    @pytest.mark.asyncio
    async def test_insufficient_history(self, agent: InsightAgent) -> None:
        agent.record_snapshot(KPIMetrics(**HEALTHY))
        agent.record_snapshot(KPIMetrics(**_metrics(error_rate=0.04)))

        result = await agent.execute(_action("predict_trends"))

        assert result.success
        assert result.detail == {}
        assert "insufficient history" in result.message

    @pytest.mark.asyncio
    async def test_linear_extrapolation(self, agent: InsightAgent) -> None:
        for rate in (0.02, 0.04, 0.06):
            agent.record_snapshot(KPIMetrics(**_metrics(error_rate=rate)))

        result = await agent.execute(_action("predict_trends", horizon=2))

        error = result.detail["error_rate"]
        assert error.direction == TrendDirection.INCREASING
        assert error.slope == pytest.approx(0.02)
        assert error.predicted == pytest.approx(0.10)
        assert result.detail["security_score"].direction == TrendDirection.STABLE

    @pytest.mark.asyncio
    async def test_invalid_horizon(self, agent: InsightAgent) -> None:
        result = await agent.execute(_action("predict_trends", horizon=0))
        assert result.status == ActionStatus.FAILED


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_ranked_by_leverage(self, agent: InsightAgent) -> None:
        candidates = [
            {"category": "security", "priority": "high", "impact": 0.9, "effort": 0.8,
             "description": "broad hardening"},
            {"category": "performance", "priority": "low", "impact": 0.8, "effort": 0.2,
             "description": "cache headers"},
        ]
        result = await agent.execute(_action("suggest_optimizations", candidates=candidates))

        assert [s.description for s in result.detail] == ["cache headers", "broad hardening"]

    @pytest.mark.asyncio
    async def test_rule_suggestions_and_invalid_candidates(self, agent: InsightAgent) -> None:
        await _analyze(agent, page_load_time=4.0, security_score=0.5)

        result = await agent.execute(
            _action("suggest_optimizations", candidates=[{"impact": 5}])
        )

        assert [s.category for s in result.detail] == ["performance", "security"]
        assert agent.suggestions == result.detail


class TestUsageAnalyses:
    @pytest.mark.asyncio
    async def test_user_behavior(self, agent: InsightAgent) -> None:
        events = [
            {"session_id": "a", "page": "/home", "timestamp": 0},
            {"session_id": "a", "page": "/pricing", "timestamp": 120},
            {"session_id": "b", "page": "/home", "timestamp": 10},
        ]
        result = await agent.execute(
            _action("analyze_user_behavior", has_permission=True, events=events)
        )

        summary = result.detail
        assert summary.sessions == 2
        assert summary.top_pages[0] == "/home"
        assert summary.bounce_rate == 0.5

    @pytest.mark.asyncio
    async def test_personal_data_requires_anonymization(self, agent: InsightAgent) -> None:
        events = [{"session_id": "a", "page": "/home", "email": "a@example.com"}]

        denied = await agent.execute(
            _action("analyze_user_behavior", has_permission=True, events=events)
        )
        assert denied.denied_by == "preserve_user_privacy"

        allowed = await agent.execute(
            _action("analyze_user_behavior", has_permission=True, anonymized=True, events=events)
        )
        assert allowed.success

    @pytest.mark.asyncio
    async def test_export_requires_anonymization(self, agent: InsightAgent) -> None:
        result = await agent.execute(_action("generate_insights", export_data=True))
        assert result.denied_by == "no_data_export_without_anonymization"

    @pytest.mark.asyncio
    async def test_costs(self, agent: InsightAgent) -> None:
        costs = [
            {"service": "compute", "amount": 70.0},
            {"service": "storage", "amount": 30.0},
        ]
        result = await agent.execute(
            _action("analyze_costs", costs=costs, active_users=50, previous_total=80.0)
        )

        summary = result.detail
        assert summary.total_cost == 100.0
        assert summary.cost_per_user == 2.0
        assert summary.cost_trend == TrendDirection.INCREASING
        assert summary.recommendations[0].startswith("Review compute spending")

    @pytest.mark.asyncio
    async def test_performance(self, agent: InsightAgent) -> None:
        samples = [{"response_time": t, "status": 200} for t in (0.1, 0.2, 0.3)]
        samples.append({"response_time": 1.0, "status": 503})

        result = await agent.execute(_action("analyze_performance", samples=samples))

        summary = result.detail
        assert summary.samples == 4
        assert summary.error_rate == 0.25
        assert summary.p99_response_time == 1.0

    @pytest.mark.asyncio
    async def test_security(self, agent: InsightAgent) -> None:
        findings = [{"severity": "critical"}, {"severity": "medium"}]
        result = await agent.execute(_action("analyze_security", findings=findings))

        posture = result.detail
        assert posture.vulnerability_count == 2
        assert posture.security_score == pytest.approx(0.65)

    @pytest.mark.asyncio
    async def test_missing_records(self, agent: InsightAgent) -> None:
        result = await agent.execute(_action("analyze_costs"))
        assert not result.success
        assert "no 'costs'" in result.message


class TestGenerateInsights:
    @pytest.mark.asyncio
    async def test_empty_agent(self, agent: InsightAgent) -> None:
        result = await agent.execute(_action("generate_insights"))

        summary = result.detail
        assert summary.overall_health is None
        assert summary.trend_direction == "stable"
        assert summary.priority_actions == []

    @pytest.mark.asyncio
    async def test_aggregates_earlier_results(self, agent: InsightAgent) -> None:
        for rate in (0.02, 0.03):
            agent.record_snapshot(KPIMetrics(**_metrics(error_rate=rate)))
        analysis = await _analyze(agent, error_rate=0.01, page_load_time=3.0)
        await agent.execute(_action("predict_trends"))
        await agent.execute(_action("suggest_optimizations"))

        summary = (await agent.execute(_action("generate_insights"))).detail

        assert summary.overall_health == analysis.overall_score
        assert summary.kpi_analysis == analysis
        assert set(summary.predictions) == set(HEALTHY)
        assert [s.category for s in summary.priority_actions] == ["performance"]


def test_invalid_weights_are_rejected(settings: WardenConfig) -> None:
    bad = settings.model_copy(update={"insight": InsightConfig(weights={"error_rate": 1.0})})
    with pytest.raises(AgentMisconfigured):
        InsightAgent(settings=bad)

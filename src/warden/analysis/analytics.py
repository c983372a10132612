"""KPI and usage analytics for InsightAgent.

Pure functions over snapshots and raw records: scoring, trends, alerts,
recommendations, regression-based prediction, suggestion ranking and the
four read-and-summarize analyses (behavior, costs, performance, security).
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Any

from warden.config import AlertThresholds, RecommendationThresholds
from warden.models import (
    KPI_FIELDS,
    SEVERITY_RANK,
    AlertLevel,
    BehaviorSummary,
    CostSummary,
    KPIAlert,
    KPIMetrics,
    OptimizationSuggestion,
    PerformanceSummary,
    SecurityPosture,
    Severity,
    TrendDirection,
    TrendPrediction,
)

# Metrics where a smaller value is better
LOWER_IS_BETTER = frozenset({"page_load_time", "error_rate"})


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ============================================================================
# Scoring & trends
# ============================================================================


def normalized_scores(metrics: KPIMetrics, page_load_budget: float) -> dict[str, float]:
    """Every metric mapped to 0..1 where 1 is best."""
    scores: dict[str, float] = {}
    for name, value in metrics.values().items():
        if name == "error_rate":
            scores[name] = _clamp(1.0 - value)
        elif name == "page_load_time":
            scores[name] = _clamp(1.0 - value / page_load_budget)
        else:
            scores[name] = _clamp(value)
    return scores


def overall_score(
    metrics: KPIMetrics,
    weights: Mapping[str, float],
    page_load_budget: float,
) -> float:
    scores = normalized_scores(metrics, page_load_budget)
    return round(sum(scores[name] * weights.get(name, 0.0) for name in KPI_FIELDS), 4)


def validate_weights(weights: Mapping[str, float]) -> list[str]:
    """Problems with a weight table; empty when usable."""
    problems: list[str] = []
    missing = set(KPI_FIELDS) - set(weights)
    unknown = set(weights) - set(KPI_FIELDS)
    if missing:
        problems.append(f"missing weights: {sorted(missing)}")
    if unknown:
        problems.append(f"unknown metrics: {sorted(unknown)}")
    if any(w < 0 for w in weights.values()):
        problems.append("weights must not be negative")
    total = sum(weights.values())
    if not math.isclose(total, 1.0, abs_tol=1e-6):
        problems.append(f"weights sum to {total:.4f}, not 1")
    return problems


def percent_trends(previous: KPIMetrics | None, current: KPIMetrics) -> dict[str, float | None]:
    """Percent change per metric vs the previous snapshot.

    None without a previous snapshot, or where the previous value is zero.
    """
    trends: dict[str, float | None] = {}
    before = previous.values() if previous is not None else {}
    for name, value in current.values().items():
        prev = before.get(name)
        if prev is None or prev == 0:
            trends[name] = None
        else:
            trends[name] = round((value - prev) / prev * 100.0, 4)
    return trends


def kpi_alerts(metrics: KPIMetrics, thresholds: AlertThresholds) -> list[KPIAlert]:
    alerts: list[KPIAlert] = []
    if metrics.error_rate > thresholds.error_rate_critical:
        alerts.append(
            KPIAlert(
                metric="error_rate",
                level=AlertLevel.CRITICAL,
                value=metrics.error_rate,
                threshold=thresholds.error_rate_critical,
                message=f"error rate {metrics.error_rate:.1%} above {thresholds.error_rate_critical:.1%}",
            )
        )
    if metrics.page_load_time > thresholds.page_load_warning:
        alerts.append(
            KPIAlert(
                metric="page_load_time",
                level=AlertLevel.WARNING,
                value=metrics.page_load_time,
                threshold=thresholds.page_load_warning,
                message=f"page load {metrics.page_load_time:.2f}s above {thresholds.page_load_warning:.2f}s",
            )
        )
    if metrics.security_score < thresholds.security_score_warning:
        alerts.append(
            KPIAlert(
                metric="security_score",
                level=AlertLevel.WARNING,
                value=metrics.security_score,
                threshold=thresholds.security_score_warning,
                message=f"security score {metrics.security_score:.2f} below {thresholds.security_score_warning:.2f}",
            )
        )
    return alerts


def kpi_recommendations(metrics: KPIMetrics, thresholds: RecommendationThresholds) -> list[str]:
    recs: list[str] = []
    if metrics.user_engagement < thresholds.user_engagement_min:
        recs.append("Improve user engagement through better UX and onboarding")
    if metrics.conversion_rate < thresholds.conversion_rate_min:
        recs.append("Optimize the conversion funnel and reduce friction")
    if metrics.page_load_time > thresholds.page_load_time_max:
        recs.append("Reduce page load time with caching and bundle splitting")
    if metrics.error_rate > thresholds.error_rate_max:
        recs.append("Reduce the error rate by fixing the most frequent failures")
    if metrics.cost_efficiency < thresholds.cost_efficiency_min:
        recs.append("Review infrastructure spending for cost efficiency")
    if metrics.security_score < thresholds.security_score_min:
        recs.append("Raise the security score by addressing open findings")
    return recs


# ============================================================================
# Prediction
# ============================================================================


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of ``values`` over 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0
    sum_x = n * (n - 1) / 2
    sum_xx = (n - 1) * n * (2 * n - 1) / 6
    sum_y = sum(values)
    sum_xy = sum(i * y for i, y in enumerate(values))
    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def predict(history: Sequence[KPIMetrics], horizon: int) -> dict[str, TrendPrediction]:
    """Linear extrapolation ``horizon`` steps ahead. Empty below 3 snapshots."""
    if len(history) < 3:
        return {}
    predictions: dict[str, TrendPrediction] = {}
    for name in KPI_FIELDS:
        values = [getattr(snapshot, name) for snapshot in history]
        slope = linear_slope(values)
        if math.isclose(slope, 0.0, abs_tol=1e-12):
            direction = TrendDirection.STABLE
        else:
            direction = TrendDirection.INCREASING if slope > 0 else TrendDirection.DECREASING
        predictions[name] = TrendPrediction(
            metric=name,
            current=values[-1],
            predicted=round(values[-1] + slope * horizon, 6),
            slope=round(slope, 6),
            direction=direction,
            horizon=horizon,
        )
    return predictions


def overall_trend(predictions: Mapping[str, TrendPrediction]) -> str:
    """positive / negative / stable by count of improving vs worsening metrics."""
    improving = worsening = 0
    for name, prediction in predictions.items():
        if prediction.direction == TrendDirection.STABLE:
            continue
        rising = prediction.direction == TrendDirection.INCREASING
        if rising != (name in LOWER_IS_BETTER):
            improving += 1
        else:
            worsening += 1
    if improving > worsening:
        return "positive"
    if worsening > improving:
        return "negative"
    return "stable"


# ============================================================================
# Optimization suggestions
# ============================================================================


def rank_suggestions(suggestions: Iterable[OptimizationSuggestion]) -> list[OptimizationSuggestion]:
    """By impact/effort descending; ties by priority, highest first."""
    return sorted(
        suggestions,
        key=lambda s: (-s.leverage, -SEVERITY_RANK[s.priority]),
    )


def suggestions_for(
    metrics: KPIMetrics,
    thresholds: RecommendationThresholds,
) -> list[OptimizationSuggestion]:
    """Rule-generated suggestions for every KPI outside its target band."""
    out: list[OptimizationSuggestion] = []
    if metrics.page_load_time > thresholds.page_load_time_max:
        out.append(
            OptimizationSuggestion(
                category="performance",
                priority=Severity.HIGH,
                impact=0.8,
                effort=0.6,
                description="Split bundles and lazy-load heavy views",
                expected_improvement=f"page load from {metrics.page_load_time:.1f}s toward "
                f"{thresholds.page_load_time_max:.1f}s",
                implementation=["Enable code splitting", "Lazy-load components", "Cache static assets"],
            )
        )
    if metrics.error_rate > thresholds.error_rate_max:
        out.append(
            OptimizationSuggestion(
                category="reliability",
                priority=Severity.HIGH,
                impact=0.8,
                effort=0.5,
                description="Fix the most frequent server and client errors",
                expected_improvement=f"error rate below {thresholds.error_rate_max:.0%}",
                implementation=["Group errors by signature", "Fix top offenders", "Add regression tests"],
            )
        )
    if metrics.user_engagement < thresholds.user_engagement_min:
        out.append(
            OptimizationSuggestion(
                category="user_experience",
                priority=Severity.MEDIUM,
                impact=0.7,
                effort=0.4,
                description="Add loading states and skeleton screens",
                expected_improvement="better perceived performance and engagement",
                implementation=["Create skeleton components", "Add progress indicators"],
            )
        )
    if metrics.conversion_rate < thresholds.conversion_rate_min:
        out.append(
            OptimizationSuggestion(
                category="conversion",
                priority=Severity.MEDIUM,
                impact=0.6,
                effort=0.5,
                description="Shorten the sign-up and checkout funnel",
                expected_improvement=f"conversion above {thresholds.conversion_rate_min:.0%}",
                implementation=["Remove optional steps", "Add social sign-in"],
            )
        )
    if metrics.cost_efficiency < thresholds.cost_efficiency_min:
        out.append(
            OptimizationSuggestion(
                category="cost",
                priority=Severity.LOW,
                impact=0.5,
                effort=0.3,
                description="Cache expensive upstream calls and right-size hosting",
                expected_improvement="lower cost per user",
                implementation=["Add response caching", "Review hosting plan"],
            )
        )
    if metrics.security_score < thresholds.security_score_min:
        out.append(
            OptimizationSuggestion(
                category="security",
                priority=Severity.CRITICAL,
                impact=0.9,
                effort=0.8,
                description="Implement comprehensive input validation",
                expected_improvement="eliminate injection vulnerabilities",
                implementation=["Sanitize inputs", "Add CSRF protection", "Add rate limiting"],
            )
        )
    return out


# ============================================================================
# Read-and-summarize analyses
# ============================================================================


def _timestamp(value: Any) -> float | None:
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).timestamp()
        except ValueError:
            return None
    if isinstance(value, datetime):
        return value.timestamp()
    return None


def summarize_behavior(events: Sequence[Mapping[str, Any]], top: int = 5) -> BehaviorSummary:
    """Events carry ``session_id``, ``page`` and optionally ``type`` and ``timestamp``.

    A session counts as converted when it has an event of type ``conversion``.
    """
    pages_by_session: dict[str, list[str]] = defaultdict(list)
    times_by_session: dict[str, list[float]] = defaultdict(list)
    converted: set[str] = set()
    page_counts: Counter[str] = Counter()

    for event in events:
        session = str(event.get("session_id", "anonymous"))
        page = event.get("page")
        if page:
            pages_by_session[session].append(str(page))
            page_counts[str(page)] += 1
        if event.get("type") == "conversion":
            converted.add(session)
        ts = _timestamp(event.get("timestamp"))
        if ts is not None:
            times_by_session[session].append(ts)

    sessions = set(pages_by_session) | converted | set(times_by_session)
    journeys = Counter(tuple(pages[:top]) for pages in pages_by_session.values() if pages)
    dropoffs = Counter(
        pages[-1] for session, pages in pages_by_session.items() if pages and session not in converted
    )
    durations = [(max(t) - min(t)) / 60.0 for t in times_by_session.values() if len(t) > 1]
    bounces = sum(1 for pages in pages_by_session.values() if len(pages) == 1)

    return BehaviorSummary(
        sessions=len(sessions),
        events=len(events),
        top_pages=[page for page, _ in page_counts.most_common(top)],
        user_journey=list(journeys.most_common(1)[0][0]) if journeys else [],
        dropoff_points=[page for page, _ in dropoffs.most_common(3)],
        avg_session_minutes=round(sum(durations) / len(durations), 2) if durations else 0.0,
        bounce_rate=round(bounces / len(pages_by_session), 4) if pages_by_session else 0.0,
    )


def summarize_costs(
    items: Sequence[Mapping[str, Any]],
    *,
    active_users: int | None = None,
    previous_total: float | None = None,
    dominant_share: float = 0.4,
) -> CostSummary:
    """Items carry ``service`` and ``amount``."""
    by_service: dict[str, float] = defaultdict(float)
    for item in items:
        by_service[str(item.get("service", "other"))] += float(item.get("amount", 0.0))
    total = round(sum(by_service.values()), 2)

    trend = TrendDirection.STABLE
    if previous_total:
        change = (total - previous_total) / previous_total
        if change > 0.05:
            trend = TrendDirection.INCREASING
        elif change < -0.05:
            trend = TrendDirection.DECREASING

    recommendations = [
        f"Review {service} spending ({amount / total:.0%} of total)"
        for service, amount in sorted(by_service.items(), key=lambda kv: -kv[1])
        if total and amount / total >= dominant_share
    ]
    if trend == TrendDirection.INCREASING:
        recommendations.append("Investigate cost growth against the previous period")

    return CostSummary(
        total_cost=total,
        cost_by_service={k: round(v, 2) for k, v in by_service.items()},
        cost_per_user=round(total / active_users, 4) if active_users else None,
        cost_trend=trend,
        recommendations=recommendations,
    )


def _percentile(sorted_values: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile."""
    if not sorted_values:
        return 0.0
    rank = max(1, math.ceil(pct / 100.0 * len(sorted_values)))
    return sorted_values[rank - 1]


def summarize_performance(
    samples: Sequence[Mapping[str, Any]],
    *,
    window_minutes: float | None = None,
) -> PerformanceSummary:
    """Samples carry ``response_time`` (seconds) and ``status`` or ``error``."""
    if not samples:
        return PerformanceSummary(samples=0)
    times = sorted(float(s.get("response_time", 0.0)) for s in samples)
    errors = sum(
        1
        for s in samples
        if s.get("error") is True or int(s.get("status", 200)) >= 500
    )
    stamps = [t for t in (_timestamp(s.get("timestamp")) for s in samples) if t is not None]
    if window_minutes is None and len(stamps) > 1:
        window_minutes = (max(stamps) - min(stamps)) / 60.0
    error_rate = errors / len(samples)
    return PerformanceSummary(
        samples=len(samples),
        average_response_time=round(sum(times) / len(times), 4),
        p95_response_time=_percentile(times, 95),
        p99_response_time=_percentile(times, 99),
        throughput_per_minute=round(len(samples) / window_minutes, 2) if window_minutes else 0.0,
        error_rate=round(error_rate, 4),
        availability=round((1.0 - error_rate) * 100.0, 3),
    )


_SECURITY_PENALTY = {
    Severity.CRITICAL: 0.3,
    Severity.HIGH: 0.15,
    Severity.MEDIUM: 0.05,
    Severity.LOW: 0.01,
}


def summarize_security(findings: Sequence[Mapping[str, Any]]) -> SecurityPosture:
    """Findings carry ``severity`` and optionally ``title``."""
    counts: Counter[str] = Counter()
    penalty = 0.0
    for finding in findings:
        try:
            severity = Severity(str(finding.get("severity", "low")).lower())
        except ValueError:
            severity = Severity.LOW
        counts[severity.value] += 1
        penalty += _SECURITY_PENALTY[severity]

    recommendations: list[str] = []
    if counts[Severity.CRITICAL.value] or counts[Severity.HIGH.value]:
        recommendations.append("Remediate critical and high findings before the next release")
    if counts[Severity.MEDIUM.value]:
        recommendations.append("Schedule medium findings and update vulnerable dependencies")
    if not findings:
        recommendations.append("No open findings; keep scanning on every change")

    return SecurityPosture(
        vulnerability_count=len(findings),
        by_severity=dict(counts),
        security_score=round(_clamp(1.0 - penalty), 4),
        recommendations=recommendations,
    )

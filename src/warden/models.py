"""
Warden · Central data models.

All Pydantic models shared across agents, analysis strategies and
collaborators.

Design principles:
  - Immutable (frozen) where sensible (actions, results, findings)
  - Mutable only where the lifecycle demands it (EthicalGuideline counters,
    ChangeSet status)
  - Strict validation (no invalid state possible)
  - JSON-serializable (for logging, persistence, CLI output)
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

# ============================================================================
# Helpers
# ============================================================================


def _utc_now() -> datetime:
    """Current time in UTC. Used uniformly across the system."""
    return datetime.now(UTC)


def _new_id() -> str:
    """New UUID as hex string. Used for all ids in the system."""
    return uuid.uuid4().hex


# ============================================================================
# Enums
# ============================================================================


class ActionStatus(StrEnum):
    """Terminal status of one ``BaseAgent.execute`` call.

    SUCCEEDED: An attempt reported success.
    FAILED:    All attempts failed (execution or validation failure).
    DENIED:    A safety constraint vetoed the action. Nothing ran.
    REJECTED:  The action type is not a declared capability, or the agent
               is shut down. Nothing ran.
    CANCELLED: The caller signalled cancellation between attempts.
    """

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DENIED = "denied"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class Severity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK: dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class IssueType(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    PERFORMANCE = "performance"
    SECURITY = "security"
    STYLE = "style"


class ViolationType(StrEnum):
    PROMPT_INJECTION = "prompt_injection"
    DATA_LEAK = "data_leak"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    BIAS = "bias"
    HARMFUL_CONTENT = "harmful_content"


class ComplianceStandard(StrEnum):
    SOC2 = "SOC2"
    ISO27001 = "ISO27001"
    GDPR = "GDPR"
    CCPA = "CCPA"
    HIPAA = "HIPAA"


class ComplianceStatus(StrEnum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    NEEDS_REVIEW = "needs_review"


class Enforcement(StrEnum):
    """How a guideline violation is handled.

    STRICT:     The proposed action is blocked.
    ADVISORY:   Logged, the action proceeds.
    MONITORING: Logged, the action proceeds.
    """

    STRICT = "strict"
    ADVISORY = "advisory"
    MONITORING = "monitoring"


class AlertLevel(StrEnum):
    WARNING = "warning"
    CRITICAL = "critical"


class TrendDirection(StrEnum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ChangeStatus(StrEnum):
    APPLIED = "applied"
    REVERTED = "reverted"


# ============================================================================
# Agent contract
# ============================================================================


class AgentConfig(BaseModel, frozen=True):
    """Static declaration of an agent. Set once at construction.

    ``safety_constraints`` is ordered: constraints are evaluated in this
    order and the first denial wins. ``constraint_scopes`` maps a
    constraint name to the action types it applies to; a constraint
    without an entry applies to every action type.
    """

    name: str
    capabilities: frozenset[str]
    safety_constraints: tuple[str, ...] = ()
    constraint_scopes: dict[str, frozenset[str]] = Field(default_factory=dict)
    learning_rate: float = Field(default=0.1, gt=0.0, le=1.0)
    max_retries: int = Field(default=2, ge=0)


class AgentAction(BaseModel, frozen=True):
    """One unit of work submitted to an agent. Transient, never persisted."""

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    action_id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utc_now)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    requested_by: str = "system"


class Outcome(BaseModel, frozen=True):
    """What a single handler attempt reports back to the retry loop."""

    success: bool
    detail: Any = None
    message: str = ""


class ActionResult(BaseModel, frozen=True):
    """Typed result of ``BaseAgent.execute``.

    A denied or rejected action never reached a handler (``attempts == 0``);
    a failed action was attempted at least once.
    """

    action_id: str
    action_type: str
    agent: str
    status: ActionStatus
    detail: Any = None
    message: str = ""
    error_code: str | None = None
    denied_by: str | None = None
    attempts: int = Field(default=0, ge=0)
    duration_ms: int = Field(default=0, ge=0)
    finished_at: datetime = Field(default_factory=_utc_now)

    @property
    def success(self) -> bool:
        return self.status == ActionStatus.SUCCEEDED

    @property
    def denied(self) -> bool:
        return self.status == ActionStatus.DENIED


class CommandResult(BaseModel, frozen=True):
    """Result of one external command.

    ``exit_code`` is None when the process could not be launched or was
    killed on timeout. Non-zero exit is ``success=False`` but ``launched``.
    """

    command: str
    success: bool
    output: str = ""
    error: str = ""
    exit_code: int | None = None
    duration_ms: int = 0

    @property
    def launched(self) -> bool:
        return self.exit_code is not None


# ============================================================================
# HealAgent
# ============================================================================


class CodeIssue(BaseModel, frozen=True):
    """A finding of a scan. Repairs filter on ``type`` and ``auto_fixable``."""

    type: IssueType
    severity: Severity
    file: str
    line: int = 0
    message: str
    suggestion: str = ""
    auto_fixable: bool = False
    rule: str = ""  # Tool-specific rule id (ruff code, mypy code, advisory id)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ScanReport(BaseModel, frozen=True):
    """Result of ``scan_code``: the new authoritative issue set."""

    issues: list[CodeIssue] = Field(default_factory=list)
    checks: dict[str, int | None] = Field(default_factory=dict)  # check -> exit code
    scanned_at: datetime = Field(default_factory=_utc_now)

    def count_by(self, attr: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for issue in self.issues:
            key = str(getattr(issue, attr))
            counts[key] = counts.get(key, 0) + 1
        return counts


class RepairResult(BaseModel, frozen=True):
    """One repair batch. Appended to the agent's repair history, never mutated.

    A batch is successful only if at least one issue was fixed AND the test
    suite passed afterwards.
    """

    success: bool
    issues_fixed: int = Field(ge=0)
    issues_remaining: int = Field(ge=0)
    new_issues: list[CodeIssue] = Field(default_factory=list)
    changes: list[str] = Field(default_factory=list)
    test_results: CommandResult | None = None
    change_id: str | None = None
    category: str = ""
    created_at: datetime = Field(default_factory=_utc_now)


class ValidationReport(BaseModel, frozen=True):
    """Result of ``validate_fixes``. Passed when no high/critical issue remains."""

    passed: bool
    blocking: list[CodeIssue] = Field(default_factory=list)
    scan: ScanReport


class CodeSmell(BaseModel, frozen=True):
    """AST-detected refactoring target."""

    file_path: str
    line: int
    smell_type: str
    severity: str  # error | warning | info
    message: str
    suggestion: str = ""


class RefactorStep(BaseModel, frozen=True):
    """One step of a refactoring plan, executed in order."""

    order: int
    file_path: str
    smells: list[str] = Field(default_factory=list)
    description: str = ""


class ChangeSet(BaseModel):
    """Reversible record of one repair batch.

    ``files`` maps a path to its content before the batch touched it
    (None = file did not exist). ``revert_commands`` undo non-file effects.
    """

    change_id: str = Field(default_factory=_new_id)
    description: str = ""
    files: dict[str, str | None] = Field(default_factory=dict)
    revert_commands: list[str] = Field(default_factory=list)
    status: ChangeStatus = ChangeStatus.APPLIED
    created_at: datetime = Field(default_factory=_utc_now)
    reverted_at: datetime | None = None


class RollbackResult(BaseModel, frozen=True):
    change_id: str
    already_reverted: bool = False
    complete: bool = True
    restored_files: list[str] = Field(default_factory=list)
    failed_commands: list[str] = Field(default_factory=list)


# ============================================================================
# InsightAgent
# ============================================================================

KPI_FIELDS: tuple[str, ...] = (
    "user_engagement",
    "conversion_rate",
    "page_load_time",
    "error_rate",
    "cost_efficiency",
    "security_score",
)


class KPIMetrics(BaseModel, frozen=True):
    """Fixed-shape KPI snapshot.

    Rates and scores are normalized 0-1; ``page_load_time`` is in seconds.
    """

    user_engagement: float = Field(ge=0.0)
    conversion_rate: float = Field(ge=0.0)
    page_load_time: float = Field(ge=0.0)
    error_rate: float = Field(ge=0.0)
    cost_efficiency: float = Field(ge=0.0)
    security_score: float = Field(ge=0.0)
    captured_at: datetime = Field(default_factory=_utc_now)

    def values(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in KPI_FIELDS}


class KPIAlert(BaseModel, frozen=True):
    metric: str
    level: AlertLevel
    value: float
    threshold: float
    message: str


class KPIAnalysis(BaseModel, frozen=True):
    metrics: KPIMetrics
    overall_score: float
    trends: dict[str, float | None] = Field(default_factory=dict)
    alerts: list[KPIAlert] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    analyzed_at: datetime = Field(default_factory=_utc_now)


class TrendPrediction(BaseModel, frozen=True):
    metric: str
    current: float
    predicted: float
    slope: float
    direction: TrendDirection
    horizon: int


class OptimizationSuggestion(BaseModel, frozen=True):
    category: str
    priority: Severity
    impact: float = Field(ge=0.0, le=1.0)
    effort: float = Field(ge=0.0, le=1.0)
    description: str
    expected_improvement: str = ""
    implementation: list[str] = Field(default_factory=list)

    @property
    def leverage(self) -> float:
        """impact / effort; zero effort is infinite leverage."""
        if self.effort == 0:
            return float("inf")
        return self.impact / self.effort


class BehaviorSummary(BaseModel, frozen=True):
    sessions: int
    events: int
    top_pages: list[str] = Field(default_factory=list)
    user_journey: list[str] = Field(default_factory=list)
    dropoff_points: list[str] = Field(default_factory=list)
    avg_session_minutes: float = 0.0
    bounce_rate: float = 0.0


class CostSummary(BaseModel, frozen=True):
    total_cost: float
    cost_by_service: dict[str, float] = Field(default_factory=dict)
    cost_per_user: float | None = None
    cost_trend: TrendDirection = TrendDirection.STABLE
    recommendations: list[str] = Field(default_factory=list)


class PerformanceSummary(BaseModel, frozen=True):
    samples: int
    average_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    throughput_per_minute: float = 0.0
    error_rate: float = 0.0
    availability: float = 100.0


class SecurityPosture(BaseModel, frozen=True):
    vulnerability_count: int
    by_severity: dict[str, int] = Field(default_factory=dict)
    security_score: float = 1.0
    recommendations: list[str] = Field(default_factory=list)
    assessed_at: datetime = Field(default_factory=_utc_now)


class InsightSummary(BaseModel, frozen=True):
    """Aggregation of the latest analysis, predictions and top suggestions."""

    overall_health: float | None = None
    trend_direction: str = "stable"
    priority_actions: list[OptimizationSuggestion] = Field(default_factory=list)
    kpi_analysis: KPIAnalysis | None = None
    predictions: dict[str, TrendPrediction] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=_utc_now)


# ============================================================================
# EthicsAgent
# ============================================================================


class SafetyViolation(BaseModel, frozen=True):
    """Created by a detector; never mutated after creation."""

    type: ViolationType
    severity: Severity
    description: str
    source: str = ""
    mitigation: str = ""
    evidence: str = ""
    detected_at: datetime = Field(default_factory=_utc_now)


class ComplianceCheck(BaseModel, frozen=True):
    """One check-run for one standard. Superseded by the next run."""

    standard: ComplianceStandard
    status: ComplianceStatus
    issues: list[str] = Field(default_factory=list)
    last_checked: datetime = Field(default_factory=_utc_now)
    next_check: datetime


class EthicalGuideline(BaseModel):
    """Catalog entry. Only ``violations``/``last_violation`` ever change."""

    principle: str
    description: str
    enforcement: Enforcement
    violations: int = Field(default=0, ge=0)
    last_violation: datetime | None = None


class GuidelineViolation(BaseModel, frozen=True):
    principle: str
    enforcement: Enforcement
    reason: str


class GuidelineEnforcement(BaseModel, frozen=True):
    blocked: bool
    violations: list[GuidelineViolation] = Field(default_factory=list)


class BiasFinding(BaseModel, frozen=True):
    category: str
    severity: Severity
    indicator: str
    description: str
    recommendation: str = ""


class BiasAnalysis(BaseModel, frozen=True):
    index: int
    detected: bool
    findings: list[BiasFinding] = Field(default_factory=list)
    mitigated_output: str | None = None


class InputValidation(BaseModel, frozen=True):
    validated: int = 0
    rejected: int = 0
    flagged: int = 0
    reasons: list[str] = Field(default_factory=list)


class HarmPreventionReport(BaseModel, frozen=True):
    input_validation: InputValidation
    harmful_patterns: list[SafetyViolation] = Field(default_factory=list)
    safety_measures: list[str] = Field(default_factory=list)
    sanitized_inputs: list[str] = Field(default_factory=list)


class BehaviorAuditEntry(BaseModel, frozen=True):
    index: int
    action: str = ""
    violations: list[str] = Field(default_factory=list)
    risk: Severity = Severity.LOW

    @property
    def violation(self) -> bool:
        return bool(self.violations)


class BehaviorAudit(BaseModel, frozen=True):
    entries: list[BehaviorAuditEntry] = Field(default_factory=list)
    remediations: list[str] = Field(default_factory=list)


class ThreatSimulationResult(BaseModel, frozen=True):
    scenario: str
    detected: bool
    findings: int = 0
    response_time_ms: float = 0.0
    mitigation: str = ""
    simulated_at: datetime = Field(default_factory=_utc_now)


class OutputValidation(BaseModel, frozen=True):
    index: int
    safe: bool
    findings: list[SafetyViolation] = Field(default_factory=list)


class QuarantinedOutput(BaseModel, frozen=True):
    output: str
    findings: list[SafetyViolation] = Field(default_factory=list)
    quarantined_at: datetime = Field(default_factory=_utc_now)


class OutputValidationReport(BaseModel, frozen=True):
    released: list[str] = Field(default_factory=list)
    quarantined: list[QuarantinedOutput] = Field(default_factory=list)
    validations: list[OutputValidation] = Field(default_factory=list)


class EthicsReport(BaseModel, frozen=True):
    report_id: str = Field(default_factory=_new_id)
    generated_at: datetime = Field(default_factory=_utc_now)
    safety_violations: list[SafetyViolation] = Field(default_factory=list)
    compliance_checks: list[ComplianceCheck] = Field(default_factory=list)
    guidelines: list[EthicalGuideline] = Field(default_factory=list)
    threat_simulations: list[ThreatSimulationResult] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    overall_score: float = Field(ge=0.0, le=1.0)

    @field_validator("guidelines", mode="before")
    @classmethod
    def _copy_guidelines(cls, value: Any) -> Any:
        # Snapshot: later counter updates must not leak into a stored report
        if isinstance(value, list):
            return [
                g.model_copy() if isinstance(g, EthicalGuideline) else g
                for g in value
            ]
        return value


# ============================================================================
# Collaborator payloads
# ============================================================================


class Alert(BaseModel, frozen=True):
    """Best-effort notification for the issue/alert sink."""

    source: str
    severity: Severity
    title: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utc_now)

"""
Warden · Configuration system.

Loads configuration from:
  1. Defaults (defined here)
  2. ~/.warden/warden.yaml or an explicit path (overrides defaults)
  3. Environment variables WARDEN_* (overrides everything)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from warden.models import ComplianceStandard
from warden.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0

# ============================================================================
# Configuration models
# ============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_logs: bool = False
    console: bool = True
    log_dir: Path | None = None


class RetryConfig(BaseModel):
    """Attempt budget, backoff and per-attempt timeouts.

    Backoff before attempt n (n >= 2) is ``base_delay * 2**(n-2)``, capped
    at ``max_delay_seconds``. ``timeouts`` maps an action type to its
    per-attempt timeout; unlisted types use ``default_timeout_seconds``.
    """

    base_delay_seconds: float = Field(default=0.5, ge=0.0)
    max_delay_seconds: float = Field(default=30.0, ge=0.0)
    default_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0.0)
    timeouts: dict[str, float] = Field(
        default_factory=lambda: {
            "scan_code": 600.0,
            "fix_errors": 900.0,
            "fix_warnings": 900.0,
            "optimize_performance": 900.0,
            "fix_security_issues": 900.0,
            "refactor_code": 900.0,
            "run_tests": 900.0,
            "validate_fixes": 600.0,
        }
    )

    def timeout_for(self, action_type: str) -> float:
        return self.timeouts.get(action_type, self.default_timeout_seconds)


class RetentionConfig(BaseModel):
    """Size of every in-memory history buffer. Oldest entries are evicted."""

    experiences: int = Field(default=1000, ge=1)
    repair_history: int = Field(default=100, ge=1)
    kpi_window: int = Field(default=30, ge=2)
    violation_log: int = Field(default=500, ge=1)
    quarantine: int = Field(default=200, ge=1)
    threat_simulations: int = Field(default=200, ge=1)
    compliance_history: int = Field(default=100, ge=1)
    audit_log: int = Field(default=500, ge=1)


class HealConfig(BaseModel):
    """HealAgent: project layout and external check commands."""

    project_root: Path = Field(default_factory=lambda: Path("."))
    tests_dir: str = "tests"
    # Paths whose modification requires an explicit security review
    protected_paths: list[str] = Field(
        default_factory=lambda: [".github", "auth", "security", "secrets"]
    )
    lint_command: str = "ruff check --output-format=json ."
    type_check_command: str = "mypy --no-error-summary ."
    audit_command: str = "pip-audit -f json"
    test_command: str = "pytest -q"
    refactor_rules: str = "SIM,C4,RET,PERF"
    # Code smell thresholds
    max_function_lines: int = Field(default=50, ge=1)
    max_nesting_depth: int = Field(default=4, ge=1)
    max_parameters: int = Field(default=5, ge=1)
    max_class_methods: int = Field(default=20, ge=1)
    duplicate_threshold: float = Field(default=0.8, gt=0.0, le=1.0)


class AlertThresholds(BaseModel):
    """Ceilings/floors that raise KPI alerts."""

    error_rate_critical: float = 0.1
    page_load_warning: float = 5.0
    security_score_warning: float = 0.8


class RecommendationThresholds(BaseModel):
    """Below/above these values a KPI recommendation is produced."""

    user_engagement_min: float = 0.7
    conversion_rate_min: float = 0.1
    page_load_time_max: float = 2.0
    error_rate_max: float = 0.05
    cost_efficiency_min: float = 0.8
    security_score_min: float = 0.9


class InsightConfig(BaseModel):
    """InsightAgent: KPI weights, thresholds and presentation."""

    weights: dict[str, float] = Field(
        default_factory=lambda: {
            "user_engagement": 0.25,
            "conversion_rate": 0.25,
            "page_load_time": 0.15,
            "error_rate": 0.15,
            "cost_efficiency": 0.10,
            "security_score": 0.10,
        }
    )
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)
    recommendation_thresholds: RecommendationThresholds = Field(
        default_factory=RecommendationThresholds,
    )
    page_load_budget_seconds: float = Field(default=10.0, gt=0.0)
    top_n: int = Field(default=5, ge=1)
    prediction_horizon: int = Field(default=7, ge=1)
    # Event payload keys treated as personal data
    pii_fields: list[str] = Field(
        default_factory=lambda: ["email", "name", "phone", "ip", "ip_address", "address"]
    )


class EthicsConfig(BaseModel):
    """EthicsAgent: compliance, access policy and escalation."""

    compliance_interval_days: int = Field(default=30, ge=1)
    default_standards: list[ComplianceStandard] = Field(
        default_factory=lambda: [
            ComplianceStandard.SOC2,
            ComplianceStandard.ISO27001,
            ComplianceStandard.GDPR,
        ]
    )
    authorized_roles: list[str] = Field(
        default_factory=lambda: ["admin", "auditor", "compliance_officer", "system"]
    )
    allow_threat_simulation: bool = False
    bias_mitigation_enabled: bool = True
    escalation_severities: list[str] = Field(default_factory=lambda: ["critical"])
    # standard -> control -> evidence (True = satisfied, False = failed)
    control_evidence: dict[str, dict[str, bool]] = Field(default_factory=dict)
    # Role -> resources it may not touch, used by the access detector
    denied_resources: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "guest": ["admin", "billing", "user_data", "audit_log"],
            "user": ["admin", "audit_log"],
        }
    )
    max_failed_auth: int = Field(default=5, ge=1)


class AgentOverride(BaseModel):
    """Per-agent overrides of the built-in declaration."""

    max_retries: int | None = Field(default=None, ge=0)
    learning_rate: float | None = Field(default=None, gt=0.0, le=1.0)


class WardenConfig(BaseModel):
    """Complete Warden configuration.

    Loaded once at startup and then passed to every agent.
    """

    version: str = "0.4.0"
    warden_home: Path = Field(default_factory=lambda: Path.home() / ".warden")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    heal: HealConfig = Field(default_factory=HealConfig)
    insight: InsightConfig = Field(default_factory=InsightConfig)
    ethics: EthicsConfig = Field(default_factory=EthicsConfig)
    agents: dict[str, AgentOverride] = Field(default_factory=dict)

    @property
    def learning_path(self) -> Path:
        return self.warden_home / "learning.jsonl"

    @property
    def reports_dir(self) -> Path:
        return self.warden_home / "reports"

    @property
    def changes_dir(self) -> Path:
        return self.warden_home / "changes"

    def override_for(self, agent_name: str) -> AgentOverride:
        return self.agents.get(agent_name, AgentOverride())


# ============================================================================
# Loading
# ============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge of two dicts. Override wins on conflicts."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


_SECTIONS = ("logging", "retry", "retention", "heal", "insight", "ethics", "agents")


def _apply_env_overrides(
    data: dict[str, Any],
    environ: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Applies WARDEN_* environment variables.

    Convention: WARDEN_SECTION_KEY -> data["section"]["key"]
    Example: WARDEN_RETRY_BASE_DELAY_SECONDS -> data["retry"]["base_delay_seconds"]
    Top-level keys: WARDEN_WARDEN_HOME -> data["warden_home"]
    """
    prefix = "WARDEN_"
    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for key, value in env.items():
        if not key.startswith(prefix):
            continue
        rest = key[len(prefix):].lower()
        section = next((s for s in _SECTIONS if rest.startswith(s + "_")), None)
        if section is None:
            overrides[rest] = value
            continue
        leaf = rest[len(section) + 1:]
        if not leaf:
            continue
        if section == "agents":
            # WARDEN_AGENTS_HEAL_MAX_RETRIES -> agents.heal.max_retries
            agent, _, field = leaf.partition("_")
            if field:
                overrides.setdefault("agents", {}).setdefault(agent, {})[field] = value
            continue
        overrides.setdefault(section, {})[leaf] = value
    return _deep_merge(data, overrides)


def load_config(config_path: Path | None = None) -> WardenConfig:
    """Loads the configuration.

    Order (later overrides earlier):
      1. Defaults (in the Pydantic models)
      2. warden.yaml (if present)
      3. WARDEN_* environment variables

    Args:
        config_path: Explicit path to the YAML file. None: ~/.warden/warden.yaml

    Returns:
        Fully validated WardenConfig.
    """
    data: dict[str, Any] = {}

    if config_path is None:
        config_path = Path.home() / ".warden" / "warden.yaml"

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if isinstance(file_data, dict):
                data = file_data
            else:
                log.warning("config_not_a_mapping", path=str(config_path))
        except yaml.YAMLError as exc:
            log.warning("config_malformed_ignored", path=str(config_path), error=str(exc))

    data = _apply_env_overrides(data)

    return WardenConfig(**data)

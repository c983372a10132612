"""Compliance checks against per-standard control catalogs.

A control is satisfied by evidence: ``True`` (control in place), ``False``
(control known to fail) or absent (not assessed). Status per standard:

  - every control True      -> compliant
  - any control False       -> non_compliant
  - otherwise               -> needs_review
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from warden.models import ComplianceCheck, ComplianceStandard, ComplianceStatus


@dataclass(frozen=True)
class Control:
    """One control of a standard's catalog."""

    control_id: str
    requirement: str


# ============================================================================
# Control catalogs
# ============================================================================

CONTROL_CATALOG: dict[ComplianceStandard, tuple[Control, ...]] = {
    ComplianceStandard.SOC2: (
        Control("access_control", "Logical access is restricted to authorized users (CC6.1)"),
        Control("encryption_at_rest", "Stored data is encrypted (CC6.7)"),
        Control("encryption_in_transit", "Data in transit is encrypted (CC6.7)"),
        Control("audit_logging", "System activity is logged and reviewed (CC7.2)"),
        Control("change_management", "Changes are authorized, tested and approved (CC8.1)"),
        Control("incident_response", "Security incidents are identified and handled (CC7.4)"),
    ),
    ComplianceStandard.ISO27001: (
        Control("risk_assessment", "Information security risks are assessed (6.1.2)"),
        Control("asset_inventory", "Information assets are inventoried (A.5.9)"),
        Control("access_control", "Access to information is controlled (A.5.15)"),
        Control("supplier_security", "Supplier relationships are secured (A.5.19)"),
        Control("business_continuity", "Security is maintained during disruption (A.5.29)"),
    ),
    ComplianceStandard.GDPR: (
        Control("lawful_basis", "Processing has a documented lawful basis (Art. 6)"),
        Control("data_minimization", "Only necessary personal data is processed (Art. 5(1)(c))"),
        Control("consent_management", "Consent is recorded and withdrawable (Art. 7)"),
        Control("data_subject_rights", "Access/erasure requests are honoured (Art. 15-17)"),
        Control("breach_notification", "Breaches are reported within 72 hours (Art. 33)"),
    ),
    ComplianceStandard.CCPA: (
        Control("privacy_notice", "Consumers are told what is collected (1798.100)"),
        Control("opt_out_of_sale", "A do-not-sell opt-out is offered (1798.120)"),
        Control("data_deletion", "Deletion requests are honoured (1798.105)"),
        Control("data_access_requests", "Access requests are honoured (1798.110)"),
    ),
    ComplianceStandard.HIPAA: (
        Control("phi_encryption", "PHI is encrypted at rest and in transit (164.312(a)(2)(iv))"),
        Control("access_audit", "Access to PHI is audited (164.312(b))"),
        Control("business_associate_agreements", "BAAs exist for every processor (164.308(b))"),
        Control("minimum_necessary", "PHI use is limited to the minimum necessary (164.502(b))"),
        Control("breach_notification", "Breaches of PHI are notified (164.404)"),
    ),
}


class ComplianceChecker:
    """Evaluates standards against control evidence."""

    def __init__(
        self,
        *,
        interval_days: int = 30,
        catalog: Mapping[ComplianceStandard, tuple[Control, ...]] | None = None,
    ) -> None:
        self._interval = timedelta(days=interval_days)
        self._catalog = dict(catalog or CONTROL_CATALOG)

    def controls(self, standard: ComplianceStandard) -> tuple[Control, ...]:
        return self._catalog.get(standard, ())

    def check(
        self,
        standard: ComplianceStandard,
        evidence: Mapping[str, bool],
        *,
        now: datetime | None = None,
    ) -> ComplianceCheck:
        checked_at = now or datetime.now(UTC)
        controls = self.controls(standard)
        failed = [c for c in controls if evidence.get(c.control_id) is False]
        missing = [c for c in controls if c.control_id not in evidence]

        issues = [f"control '{c.control_id}' failed: {c.requirement}" for c in failed]
        issues += [f"no evidence for '{c.control_id}': {c.requirement}" for c in missing]
        if not controls:
            issues.append(f"no control catalog for {standard.value}")

        if failed:
            status = ComplianceStatus.NON_COMPLIANT
        elif missing or not controls:
            status = ComplianceStatus.NEEDS_REVIEW
        else:
            status = ComplianceStatus.COMPLIANT

        return ComplianceCheck(
            standard=standard,
            status=status,
            issues=issues,
            last_checked=checked_at,
            next_check=checked_at + self._interval,
        )

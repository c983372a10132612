"""Tests for bias detection and neutral rewriting."""

from __future__ import annotations

from warden.analysis.bias import BiasDetector
from warden.models import Severity


def test_stereotype_is_detected_and_rewritten() -> None:
    detector = BiasDetector()
    text = "Women are too emotional to lead engineering teams."

    mitigated, findings = detector.mitigate(text)

    assert [f.category for f in findings] == ["gender"]
    assert findings[0].severity == Severity.HIGH
    assert findings[0].recommendation
    assert "emotional" not in mitigated


def test_term_rewrites() -> None:
    mitigated, findings = BiasDetector().mitigate("The chairman is wheelchair-bound.")

    assert {f.category for f in findings} == {"gender", "disability"}
    assert mitigated == "The chairperson is wheelchair user."


def test_neutral_text_is_untouched() -> None:
    text = "The team shipped the release on time."
    mitigated, findings = BiasDetector().mitigate(text)
    assert findings == []
    assert mitigated == text


def test_worst_severity() -> None:
    detector = BiasDetector()
    findings = detector.check("The chairman said all atheists are untrustworthy.")
    assert detector.worst(findings) == Severity.HIGH
    assert detector.worst([]) is None

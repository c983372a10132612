"""Bias detection and mitigation for generated text.

Keyword/phrase indicators per category; each indicator carries a neutral
rewrite so detection and mitigation happen in one pass. A production
deployment can swap in a model-backed detector with the same interface.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from warden.models import SEVERITY_RANK, BiasFinding, Severity


class BiasCategory(StrEnum):
    GENDER = "gender"
    AGE = "age"
    ETHNICITY = "ethnicity"
    SOCIOECONOMIC = "socioeconomic"
    DISABILITY = "disability"
    RELIGION = "religion"


@dataclass(frozen=True)
class BiasIndicator:
    category: BiasCategory
    pattern: re.Pattern[str]
    severity: Severity
    replacement: str
    recommendation: str


def _indicator(
    category: BiasCategory,
    phrase: str,
    severity: Severity,
    replacement: str,
    recommendation: str,
) -> BiasIndicator:
    return BiasIndicator(
        category=category,
        pattern=re.compile(phrase, re.IGNORECASE),
        severity=severity,
        replacement=replacement,
        recommendation=recommendation,
    )


DEFAULT_INDICATORS: tuple[BiasIndicator, ...] = (
    _indicator(
        BiasCategory.GENDER,
        r"\b(?:women|girls) (?:are|is) (?:too )?(?:emotional|hysterical|bad at (?:math|science|driving))\b",
        Severity.HIGH,
        "people differ individually",
        "Avoid gender stereotypes; describe individuals, not groups.",
    ),
    _indicator(
        BiasCategory.GENDER,
        r"\b(?:men|boys) (?:don't|do not|never) (?:cry|cook|care)\b",
        Severity.MEDIUM,
        "people differ individually",
        "Avoid gender stereotypes; describe individuals, not groups.",
    ),
    _indicator(
        BiasCategory.GENDER,
        r"\btypical (?:woman|man|female|male)\b",
        Severity.MEDIUM,
        "typical person",
        "Use gender-neutral phrasing.",
    ),
    _indicator(
        BiasCategory.GENDER,
        r"\b(?:chairman|fireman|policeman|mankind)\b",
        Severity.LOW,
        "",
        "Prefer gender-neutral job titles and terms.",
    ),
    _indicator(
        BiasCategory.AGE,
        r"\b(?:too old (?:for|to)|old people (?:can't|cannot|don't) (?:understand|learn|use))\b",
        Severity.MEDIUM,
        "anyone can learn this",
        "Avoid age-based assumptions about ability.",
    ),
    _indicator(
        BiasCategory.AGE,
        r"\b(?:ok boomer|digital natives? only)\b",
        Severity.LOW,
        "",
        "Avoid generational labels as a proxy for skill.",
    ),
    _indicator(
        BiasCategory.ETHNICITY,
        r"\b(?:those|these) people (?:are|always)\b",
        Severity.HIGH,
        "some individuals",
        "Do not attribute traits to ethnic or national groups.",
    ),
    _indicator(
        BiasCategory.SOCIOECONOMIC,
        r"\bpoor people (?:are|always) (?:lazy|irresponsible)\b",
        Severity.HIGH,
        "people in every income group vary",
        "Avoid attributing character to income level.",
    ),
    _indicator(
        BiasCategory.DISABILITY,
        r"\b(?:wheelchair[- ]bound|suffers from|crippled|retarded)\b",
        Severity.MEDIUM,
        "",
        "Use person-first, neutral language about disability.",
    ),
    _indicator(
        BiasCategory.RELIGION,
        r"\ball (?:muslims|christians|jews|hindus|buddhists|atheists) are\b",
        Severity.HIGH,
        "some individuals are",
        "Do not generalise about religious groups.",
    ),
)

# Neutral rewrites for single terms that have a replacement word
_TERM_REWRITES = {
    "chairman": "chairperson",
    "fireman": "firefighter",
    "policeman": "police officer",
    "mankind": "humankind",
    "wheelchair-bound": "wheelchair user",
    "wheelchair bound": "wheelchair user",
    "suffers from": "has",
    "crippled": "disabled",
    "retarded": "person with an intellectual disability",
    "ok boomer": "",
    "digital natives only": "",
    "digital native only": "",
}


class BiasDetector:
    """Finds biased phrases and rewrites them with neutral alternatives."""

    def __init__(self, indicators: tuple[BiasIndicator, ...] = DEFAULT_INDICATORS) -> None:
        self._indicators = indicators

    def check(self, text: str) -> list[BiasFinding]:
        findings: list[BiasFinding] = []
        for indicator in self._indicators:
            for match in indicator.pattern.finditer(text):
                findings.append(
                    BiasFinding(
                        category=indicator.category.value,
                        severity=indicator.severity,
                        indicator=match.group(0),
                        description=f"{indicator.category.value} bias: '{match.group(0)}'",
                        recommendation=indicator.recommendation,
                    )
                )
        return findings

    def mitigate(self, text: str) -> tuple[str, list[BiasFinding]]:
        """Return the rewritten text and the findings that triggered it."""
        findings = self.check(text)
        rewritten = text
        for indicator in self._indicators:
            rewritten = indicator.pattern.sub(
                lambda m, ind=indicator: _rewrite(m.group(0), ind), rewritten
            )
        return re.sub(r"[ \t]{2,}", " ", rewritten).strip(), findings

    @staticmethod
    def worst(findings: list[BiasFinding]) -> Severity | None:
        if not findings:
            return None
        return max((f.severity for f in findings), key=SEVERITY_RANK.__getitem__)


def _rewrite(matched: str, indicator: BiasIndicator) -> str:
    term = _TERM_REWRITES.get(matched.lower())
    if term is not None:
        return term
    return indicator.replacement

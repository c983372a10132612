"""Safety detectors used by the EthicsAgent.

Every detector looks at a ``SafetyContext`` (inputs the system received,
outputs it produced, access events it observed) and returns a list of
``SafetyViolation``. Detectors are independent of each other and never
raise on odd input; they simply skip what they cannot read.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from warden.analysis.bias import BiasDetector
from warden.models import SafetyViolation, Severity, ViolationType

# ============================================================================
# Context
# ============================================================================


@dataclass
class SafetyContext:
    """What the detectors inspect. ``source`` names where it came from."""

    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    access_events: list[dict[str, Any]] = field(default_factory=list)
    source: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, source: str = "") -> SafetyContext:
        return cls(
            inputs=[str(x) for x in payload.get("inputs") or []],
            outputs=[str(x) for x in payload.get("outputs") or []],
            access_events=[e for e in payload.get("access_events") or [] if isinstance(e, dict)],
            source=str(payload.get("source") or source),
        )


@runtime_checkable
class Detector(Protocol):
    name: str

    def detect(self, context: SafetyContext) -> list[SafetyViolation]: ...


def _evidence(text: str, start: int, end: int, width: int = 40) -> str:
    lo = max(0, start - width)
    return text[lo : end + width].replace("\n", " ")


# ============================================================================
# Prompt injection
# ============================================================================


@dataclass(frozen=True)
class InjectionPattern:
    """A known prompt-injection pattern."""

    name: str
    pattern: re.Pattern[str]
    severity: Severity = Severity.HIGH


INJECTION_PATTERNS: tuple[InjectionPattern, ...] = (
    InjectionPattern(
        name="system_override",
        pattern=re.compile(
            r"(?:ignore|forget|disregard)\s+(?:all\s+)?(?:previous|prior|above)\s+"
            r"(?:instructions?|prompts?|rules?|context)",
            re.IGNORECASE,
        ),
    ),
    InjectionPattern(
        name="new_instructions",
        pattern=re.compile(r"(?:new|updated|revised)\s+(?:system\s+)?instructions?:\s", re.IGNORECASE),
    ),
    InjectionPattern(
        name="role_switch",
        pattern=re.compile(
            r"you\s+are\s+now\s+(?:a\s+|an\s+)?(?:different|new|evil|unrestricted)",
            re.IGNORECASE,
        ),
    ),
    InjectionPattern(
        name="jailbreak",
        pattern=re.compile(r"\b(?:DAN|do\s+anything\s+now|developer\s+mode)\b", re.IGNORECASE),
    ),
    InjectionPattern(
        name="prompt_leak",
        pattern=re.compile(
            r"(?:print|show|reveal|repeat|output|display)\s+(?:your\s+)?"
            r"(?:system\s+)?(?:prompt|instructions)",
            re.IGNORECASE,
        ),
        severity=Severity.MEDIUM,
    ),
    InjectionPattern(
        name="markup_injection",
        pattern=re.compile(
            r"<\s*/?(?:system|assistant|instruction|prompt|tool_result)\s*>",
            re.IGNORECASE,
        ),
    ),
    InjectionPattern(
        name="encoded_payload",
        pattern=re.compile(r"(?:decode|eval|execute)\s+(?:this\s+)?base64", re.IGNORECASE),
        severity=Severity.MEDIUM,
    ),
    InjectionPattern(
        name="delimiter_escape",
        pattern=re.compile(r"```\s*(?:system|end_turn|human_turn|<\|)", re.IGNORECASE),
        severity=Severity.MEDIUM,
    ),
)


class PromptInjectionDetector:
    """Scans inputs against the injection pattern catalog."""

    name = "prompt_injection"

    def __init__(self, patterns: Iterable[InjectionPattern] = INJECTION_PATTERNS) -> None:
        self._patterns = tuple(patterns)

    def detect(self, context: SafetyContext) -> list[SafetyViolation]:
        violations: list[SafetyViolation] = []
        for text in context.inputs:
            for pattern in self._patterns:
                match = pattern.pattern.search(text)
                if match is None:
                    continue
                violations.append(
                    SafetyViolation(
                        type=ViolationType.PROMPT_INJECTION,
                        severity=pattern.severity,
                        description=f"prompt injection pattern '{pattern.name}' in input",
                        source=context.source,
                        mitigation="neutralize the matched instruction before it reaches a model",
                        evidence=_evidence(text, match.start(), match.end()),
                    )
                )
        return violations

    def neutralize(self, text: str) -> str:
        for pattern in self._patterns:
            text = pattern.pattern.sub(f"[NEUTRALIZED:{pattern.name}]", text)
        return text


# ============================================================================
# Data leak
# ============================================================================

CREDENTIAL_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("api_key", re.compile(r"\bsk-[a-zA-Z0-9]{20,}")),
    ("aws_access_key", re.compile(r"\bAKIA[0-9A-Z]{16}\b")),
    ("token", re.compile(r"\btoken_[a-zA-Z0-9]{8,}")),
    ("private_key", re.compile(r"-----BEGIN (?:RSA |EC |OPENSSH )?PRIVATE KEY-----")),
    ("password", re.compile(r"\bpassword\s*[:=]\s*\S+", re.IGNORECASE)),
    ("secret", re.compile(r"\bsecret\s*[:=]\s*\S+", re.IGNORECASE)),
    ("api_key_assignment", re.compile(r"\bapi_key\s*[:=]\s*\S+", re.IGNORECASE)),
)

PII_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("email", re.compile(r"\b[\w.+-]+@[\w-]+\.[\w.-]+\b")),
    ("phone", re.compile(r"(?<!\w)\+?\d{1,3}[\s.-]?\(?\d{2,4}\)?[\s.-]\d{3,4}[\s.-]\d{3,4}(?!\w)")),
    ("card_number", re.compile(r"\b(?:\d[ -]?){13,19}\b")),
    ("national_id", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
)


def luhn_valid(number: str) -> bool:
    digits = [int(c) for c in number if c.isdigit()]
    if not 13 <= len(digits) <= 19:
        return False
    total = 0
    for i, d in enumerate(reversed(digits)):
        if i % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return total % 10 == 0


class DataLeakDetector:
    """Credentials (critical) and personal data (high) in outputs."""

    name = "data_leak"

    def detect(self, context: SafetyContext) -> list[SafetyViolation]:
        violations: list[SafetyViolation] = []
        for text in context.outputs:
            for kind, pattern in CREDENTIAL_PATTERNS:
                if pattern.search(text):
                    violations.append(
                        SafetyViolation(
                            type=ViolationType.DATA_LEAK,
                            severity=Severity.CRITICAL,
                            description=f"credential in output ({kind})",
                            source=context.source,
                            mitigation="revoke and rotate the credential, redact the output",
                            evidence=kind,
                        )
                    )
            for kind, pattern in PII_PATTERNS:
                match = pattern.search(text)
                if match is None:
                    continue
                if kind == "card_number" and not luhn_valid(match.group(0)):
                    continue
                violations.append(
                    SafetyViolation(
                        type=ViolationType.DATA_LEAK,
                        severity=Severity.HIGH,
                        description=f"personal data in output ({kind})",
                        source=context.source,
                        mitigation="mask personal data before release",
                        evidence=kind,
                    )
                )
        return violations

    @staticmethod
    def redact(text: str) -> str:
        for kind, pattern in (*CREDENTIAL_PATTERNS, *PII_PATTERNS):
            text = pattern.sub(f"[REDACTED:{kind}]", text)
        return text


# ============================================================================
# Unauthorized access
# ============================================================================


class UnauthorizedAccessDetector:
    """Access events against a role/resource deny matrix.

    An event looks like ``{"actor": "bob", "role": "guest", "resource":
    "billing", "action": "read", "success": true}``. Authentication events
    carry ``"action": "auth"``; ``max_failed_auth`` failures by one actor
    are reported once.
    """

    name = "unauthorized_access"

    def __init__(
        self,
        denied_resources: Mapping[str, Iterable[str]] | None = None,
        *,
        max_failed_auth: int = 5,
    ) -> None:
        self._denied = {role: set(res) for role, res in (denied_resources or {}).items()}
        self._max_failed_auth = max_failed_auth

    def detect(self, context: SafetyContext) -> list[SafetyViolation]:
        violations: list[SafetyViolation] = []
        failed_auth: Counter[str] = Counter()
        for event in context.access_events:
            actor = str(event.get("actor", "unknown"))
            if event.get("action") == "auth":
                if event.get("success") is False:
                    failed_auth[actor] += 1
                continue
            role = str(event.get("role", ""))
            resource = str(event.get("resource", ""))
            if resource in self._denied.get(role, ()):
                violations.append(
                    SafetyViolation(
                        type=ViolationType.UNAUTHORIZED_ACCESS,
                        severity=Severity.CRITICAL if event.get("success") else Severity.HIGH,
                        description=f"role '{role}' accessed '{resource}'",
                        source=context.source,
                        mitigation="revoke the session and review the role's grants",
                        evidence=f"actor={actor}",
                    )
                )
        for actor, count in failed_auth.items():
            if count >= self._max_failed_auth:
                violations.append(
                    SafetyViolation(
                        type=ViolationType.UNAUTHORIZED_ACCESS,
                        severity=Severity.HIGH,
                        description=f"{count} failed authentication attempts",
                        source=context.source,
                        mitigation="lock the account and require re-verification",
                        evidence=f"actor={actor}",
                    )
                )
        return violations


# ============================================================================
# Bias
# ============================================================================


class OutputBiasDetector:
    """Runs the bias indicator catalog over outputs."""

    name = "bias"

    def __init__(self, detector: BiasDetector | None = None) -> None:
        self._detector = detector or BiasDetector()

    def detect(self, context: SafetyContext) -> list[SafetyViolation]:
        return [
            SafetyViolation(
                type=ViolationType.BIAS,
                severity=finding.severity,
                description=finding.description,
                source=context.source,
                mitigation=finding.recommendation,
                evidence=finding.indicator,
            )
            for text in context.outputs
            for finding in self._detector.check(text)
        ]


# ============================================================================
# Harmful content
# ============================================================================


@dataclass(frozen=True)
class HarmPattern:
    category: str
    pattern: re.Pattern[str]
    severity: Severity


HARM_PATTERNS: tuple[HarmPattern, ...] = (
    HarmPattern(
        "self_harm_instructions",
        re.compile(
            r"\b(?:how\s+to|ways\s+to|best\s+way\s+to)\s+(?:kill\s+(?:yourself|myself)|"
            r"commit\s+suicide|end\s+(?:your|my)\s+life|self[- ]harm)",
            re.IGNORECASE,
        ),
        Severity.CRITICAL,
    ),
    HarmPattern(
        "weapons",
        re.compile(
            r"\b(?:build|make|assemble|construct)\s+(?:a\s+|an\s+)?(?:pipe\s+)?"
            r"(?:bomb|explosive|ied|silencer)s?\b",
            re.IGNORECASE,
        ),
        Severity.CRITICAL,
    ),
    HarmPattern(
        "violence",
        re.compile(
            r"\b(?:kill|murder|attack|assault|hurt|stab|shoot)\s+(?:him|her|them|people|everyone|"
            r"(?:my|the|those)\s+(?:wife|husband|boss|neighbou?rs?|family|parents?|"
            r"kids|children|people))\b",
            re.IGNORECASE,
        ),
        Severity.HIGH,
    ),
    HarmPattern(
        "illicit",
        re.compile(
            r"\b(?:synthesi[sz]e|cook|manufacture)\s+(?:meth|methamphetamine|fentanyl|heroin)\b"
            r"|\blaunder(?:ing)?\s+money\b",
            re.IGNORECASE,
        ),
        Severity.HIGH,
    ),
)


class HarmfulContentDetector:
    """Harm categories in both inputs and outputs."""

    name = "harmful_content"

    def __init__(self, patterns: Iterable[HarmPattern] = HARM_PATTERNS) -> None:
        self._patterns = tuple(patterns)

    def scan(self, texts: Iterable[str], *, source: str = "") -> list[SafetyViolation]:
        violations: list[SafetyViolation] = []
        for text in texts:
            for harm in self._patterns:
                match = harm.pattern.search(text)
                if match is None:
                    continue
                violations.append(
                    SafetyViolation(
                        type=ViolationType.HARMFUL_CONTENT,
                        severity=harm.severity,
                        description=f"harmful content ({harm.category})",
                        source=source,
                        mitigation="refuse and, for self-harm, point to crisis resources",
                        evidence=_evidence(text, match.start(), match.end()),
                    )
                )
        return violations

    def detect(self, context: SafetyContext) -> list[SafetyViolation]:
        return self.scan([*context.inputs, *context.outputs], source=context.source)


def default_detectors(
    *,
    denied_resources: Mapping[str, Iterable[str]] | None = None,
    max_failed_auth: int = 5,
    bias: BiasDetector | None = None,
) -> list[Detector]:
    """The five standard detectors, in reporting order."""
    return [
        PromptInjectionDetector(),
        DataLeakDetector(),
        UnauthorizedAccessDetector(denied_resources, max_failed_auth=max_failed_auth),
        OutputBiasDetector(bias),
        HarmfulContentDetector(),
    ]

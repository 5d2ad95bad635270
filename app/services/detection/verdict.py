"""
Verdict model - one perspective's structured output for one record.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class Severity(str, Enum):
    """Incident severity, ordered none < low < medium < high < critical."""
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def ordinal(self) -> int:
        return _SEVERITY_ORDER[self]

    @classmethod
    def parse(cls, value: Any) -> "Severity":
        """Lenient conversion; unknown or missing values map to NONE."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE


_SEVERITY_ORDER = {
    Severity.NONE: 0,
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

INCIDENT_SEVERITIES = (Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)
ALERT_SEVERITIES = (Severity.HIGH, Severity.CRITICAL)


@dataclass
class Verdict:
    """Output of one perspective. `extra` keeps the raw parsed object."""
    perspective: str
    detected: bool
    type: str
    severity: Severity = Severity.NONE
    confidence: int = 0
    evidence: List[str] = field(default_factory=list)
    description: str = ""
    articles: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "perspective": self.perspective,
            "incident_detected": self.detected,
            "type": self.type,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
            "description": self.description,
            "articles_violes": list(self.articles),
            "extra": self.extra,
        }


def max_severity(verdicts: Sequence[Verdict]) -> Severity:
    """Highest severity; on ties the first one seen is kept."""
    best: Optional[Severity] = None
    for verdict in verdicts:
        if best is None or verdict.severity.ordinal > best.ordinal:
            best = verdict.severity
    return best or Severity.NONE

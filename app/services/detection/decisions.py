"""
Incident decisions.

decide() is pure: from one record's accepted verdicts and their recurrence
results it returns the incident / alert writes to perform. Applying them
is the orchestrator's job.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from app.core.utc import to_utc
from app.services.detection.recurrence import RecurrenceResult
from app.services.detection.verdict import ALERT_SEVERITIES, INCIDENT_SEVERITIES, Severity, Verdict

INSTITUTION_RE = re.compile(r"@([^>]+)")

INCIDENT_TITLE_SUBJECT_CHARS = 80
ALERT_TITLE_SUBJECT_CHARS = 50

SEVERITY_LABELS = {
    Severity.CRITICAL: "Critique",
    Severity.HIGH: "Haute",
    Severity.MEDIUM: "Moyenne",
}
PRIORITY_LABELS = {
    Severity.CRITICAL: "critique",
    Severity.HIGH: "haute",
    Severity.MEDIUM: "normale",
}


class RecordLike(Protocol):
    id: str
    sender: str
    subject: str
    received_at: datetime


def institution_of(sender: str) -> str:
    """Sender domain ('Jane <jane@vd.ch>' -> 'vd.ch'), else the raw sender."""
    match = INSTITUTION_RE.search(sender or "")
    return match.group(1) if match else sender


@dataclass
class CreateAlert:
    title: str
    description: str
    alert_type: str
    severity: str
    related_record_id: str
    legal_references: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateIncident:
    title: str
    facts: str
    dysfunction: str
    institution: str
    type: str
    severity_label: str
    priority_label: str
    incident_date: date
    source_record_id: str
    confidence_label: str
    score: int
    evidence_payload: Dict[str, Any] = field(default_factory=dict)
    alert: Optional[CreateAlert] = None

    def incident_fields(self) -> Dict[str, Any]:
        """Column values for the Incident row."""
        return {
            "title": self.title,
            "facts": self.facts,
            "dysfunction": self.dysfunction,
            "institution": self.institution,
            "type": self.type,
            "severity_label": self.severity_label,
            "priority_label": self.priority_label,
            "incident_date": self.incident_date,
            "source_record_id": self.source_record_id,
            "confidence_label": self.confidence_label,
            "score": self.score,
            "evidence_payload": self.evidence_payload,
        }


def decide(
    record: RecordLike,
    verdicts: Sequence[Verdict],
    recurrence: Sequence[RecurrenceResult] = (),
    min_confidence: int = 70,
) -> List[CreateIncident]:
    """
    One CreateIncident per violation type for verdicts at or above
    `min_confidence` with medium, high or critical severity. High and
    critical ones carry a CreateAlert.
    """
    subject = record.subject or ""
    institution = institution_of(record.sender)
    incident_date = to_utc(record.received_at).date()

    actions: List[CreateIncident] = []
    seen_types = set()
    for verdict in verdicts:
        if verdict.confidence < min_confidence or verdict.severity not in INCIDENT_SEVERITIES:
            continue
        if verdict.type in seen_types:
            continue
        seen_types.add(verdict.type)

        pattern = next((r for r in recurrence if r.violation_type == verdict.type), None)
        alert = None
        if verdict.severity in ALERT_SEVERITIES:
            alert = CreateAlert(
                title=f"{verdict.type}: {subject[:ALERT_TITLE_SUBJECT_CHARS]}",
                description=verdict.description,
                alert_type=verdict.type,
                severity="critical" if verdict.severity == Severity.CRITICAL else "warning",
                related_record_id=record.id,
                legal_references={"articles": list(verdict.articles)},
            )

        actions.append(CreateIncident(
            title=f"[{verdict.type.upper()}] {subject[:INCIDENT_TITLE_SUBJECT_CHARS]}",
            facts=verdict.description,
            dysfunction="\n".join(verdict.evidence),
            institution=institution,
            type=verdict.type,
            severity_label=SEVERITY_LABELS[verdict.severity],
            priority_label=PRIORITY_LABELS[verdict.severity],
            incident_date=incident_date,
            source_record_id=record.id,
            confidence_label=f"{verdict.confidence}%",
            score=verdict.confidence,
            evidence_payload={
                "articles": list(verdict.articles),
                "evidence": list(verdict.evidence),
                "recurrence": pattern.to_dict() if pattern else None,
            },
            alert=alert,
        ))
    return actions

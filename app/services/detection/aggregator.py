"""
Detection Aggregator
Fans one record out to every perspective concurrently and folds the
verdicts into a single report.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from app.core.utc import utc_now_iso
from app.services.detection.classifier import PerspectiveClassifier
from app.services.detection.perspectives import DEFAULT_PERSPECTIVES, Perspective
from app.services.detection.verdict import Severity, Verdict, max_severity

logger = logging.getLogger(__name__)

STATUS_ANALYZED = "analyzed"
STATUS_UNAVAILABLE = "analysis_unavailable"


def dedupe(values: Sequence[str]) -> List[str]:
    """Order-preserving de-duplication."""
    return list(dict.fromkeys(values))


@dataclass
class AggregateResult:
    """Verdicts of one record across all perspectives."""
    perspectives_used: List[str]
    verdicts: List[Verdict] = field(default_factory=list)
    accepted: List[Verdict] = field(default_factory=list)
    perspectives_failed: List[str] = field(default_factory=list)

    @property
    def max_severity(self) -> Severity:
        return max_severity(self.accepted)

    @property
    def articles(self) -> List[str]:
        return dedupe([a for v in self.accepted for a in v.articles])

    @property
    def all_failed(self) -> bool:
        return bool(self.perspectives_used) and not self.verdicts

    @property
    def analysis_status(self) -> str:
        return STATUS_UNAVAILABLE if self.all_failed else STATUS_ANALYZED

    @property
    def confidence_avg(self) -> int:
        if not self.accepted:
            return 0
        return int(sum(v.confidence for v in self.accepted) / len(self.accepted) + 0.5)

    @property
    def summary(self) -> str:
        if not self.accepted:
            return "Aucun incident détecté"
        types = ", ".join(v.type for v in self.accepted)
        return f"{len(self.accepted)} incident(s) détecté(s): {types}"


class DetectionAggregator:
    """Runs every perspective on a record and aggregates what comes back."""

    def __init__(
        self,
        classifier: PerspectiveClassifier,
        perspectives: Optional[Sequence[Perspective]] = None,
    ):
        self.classifier = classifier
        self.perspectives = list(perspectives or DEFAULT_PERSPECTIVES)

    @property
    def perspective_names(self) -> List[str]:
        return [p.name for p in self.perspectives]

    async def analyze(
        self,
        record_text: str,
        context_text: str,
        min_confidence: int = 50,
    ) -> AggregateResult:
        """
        Classify concurrently, keep detected verdicts at or above
        `min_confidence`. A perspective that raises counts as no verdict.
        """
        outcomes = await asyncio.gather(
            *(self.classifier.classify(record_text, context_text, p) for p in self.perspectives),
            return_exceptions=True,
        )

        result = AggregateResult(perspectives_used=self.perspective_names)
        for perspective, outcome in zip(self.perspectives, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.warning(
                    "Perspective %s raised %s: %s",
                    perspective.name, outcome.__class__.__name__, outcome,
                )
                result.perspectives_failed.append(perspective.name)
            elif outcome is None:
                result.perspectives_failed.append(perspective.name)
            else:
                result.verdicts.append(outcome)

        result.accepted = [
            v for v in result.verdicts
            if v.detected and v.confidence >= min_confidence
        ]
        return result

    @staticmethod
    def build_report(result: AggregateResult, recurrence: Sequence[Any] = ()) -> dict:
        """
        Report stored on the record. Replaces any earlier report wholesale.
        `recurrence` items expose to_dict() (RecurrenceResult).
        """
        patterns = [r.to_dict() for r in recurrence]
        return {
            "analyzed_at": utc_now_iso(),
            "perspectives_used": list(result.perspectives_used),
            "perspectives_failed": list(result.perspectives_failed),
            "incidents_detected": [v.to_dict() for v in result.accepted],
            "total_incidents": len(result.accepted),
            "max_severity": result.max_severity.value,
            "recurrence_patterns": patterns,
            "has_repeated_issues": any(p["is_repeated"] for p in patterns),
            "has_new_issues": any(p["is_new"] for p in patterns),
            "all_articles_violes": result.articles,
            "summary": result.summary,
            "confidence_avg": result.confidence_avg,
            "analysis_status": result.analysis_status,
        }

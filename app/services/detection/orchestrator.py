"""
Analysis Orchestrator
=====================

Drives one detection batch over unanalysed incoming records:

    context (thread + sender history) -> all perspectives -> report
        -> recurrence per accepted verdict -> decide -> apply

Records are processed one after another with a fixed pause in between to
stay under the classification provider's rate limits. A failing record is
reported in the batch error list and the batch moves on.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.errors import ConfigurationError, LegalWatchError
from app.core.utc import to_utc, utc_now
from app.models.models import AuditAlert, CommunicationRecord, Incident
from app.services.detection.aggregator import DetectionAggregator, dedupe
from app.services.detection.classifier import (
    ClassificationBackend,
    PerspectiveClassifier,
    get_classification_backend,
)
from app.services.detection.decisions import CreateIncident, decide, institution_of
from app.services.detection.recurrence import RecurrenceResult, RecurrenceTracker

logger = logging.getLogger(__name__)

THREAD_CONTEXT_LIMIT = 5
THREAD_BODY_PREVIEW = 300
SENDER_HISTORY_LIMIT = 10


@dataclass
class RecordOutcome:
    record_id: str
    subject: str
    incidents_found: int
    analysis_status: str
    recurrence: List[RecurrenceResult] = field(default_factory=list)
    incidents_created: int = 0
    alerts_created: int = 0

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "subject": self.subject,
            "incidents_found": self.incidents_found,
            "analysis_status": self.analysis_status,
            "recurrence": [r.to_dict() for r in self.recurrence],
        }


@dataclass
class BatchReport:
    perspectives_used: List[str]
    analyzed: int = 0
    total_incidents: int = 0
    new_patterns: int = 0
    repeated_patterns: int = 0
    incidents_created: int = 0
    alerts_created: int = 0
    results: List[RecordOutcome] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    message: Optional[str] = None

    def add(self, outcome: RecordOutcome) -> None:
        self.results.append(outcome)
        self.analyzed += 1
        self.total_incidents += outcome.incidents_found
        self.new_patterns += sum(1 for r in outcome.recurrence if r.is_new)
        self.repeated_patterns += sum(1 for r in outcome.recurrence if r.is_repeated)
        self.incidents_created += outcome.incidents_created
        self.alerts_created += outcome.alerts_created

    def to_dict(self) -> dict:
        data = {
            "success": True,
            "analyzed": self.analyzed,
            "total_incidents": self.total_incidents,
            "new_patterns": self.new_patterns,
            "repeated_patterns": self.repeated_patterns,
            "incidents_created": self.incidents_created,
            "alerts_created": self.alerts_created,
            "perspectives_used": list(self.perspectives_used),
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
        }
        if self.message:
            data["message"] = self.message
        return data


def format_record(record: CommunicationRecord) -> str:
    received = to_utc(record.received_at).isoformat() if record.received_at else ""
    return (
        f"De: {record.sender}\n"
        f"À: {record.recipient or 'N/A'}\n"
        f"Sujet: {record.subject}\n"
        f"Date: {received}\n\n"
        f"{record.body}"
    )


class AnalysisOrchestrator:
    """One detection batch bound to one AsyncSession."""

    def __init__(
        self,
        db: AsyncSession,
        backend: Optional[ClassificationBackend] = None,
        aggregator: Optional[DetectionAggregator] = None,
        throttle_seconds: Optional[float] = None,
        incident_min_confidence: Optional[int] = None,
    ):
        settings = get_settings()
        self.db = db
        self.backend = backend or get_classification_backend()
        self.aggregator = aggregator or DetectionAggregator(PerspectiveClassifier(self.backend))
        self.tracker = RecurrenceTracker(db)
        self.throttle_seconds = (
            settings.analysis_throttle_seconds if throttle_seconds is None else throttle_seconds
        )
        self.incident_min_confidence = (
            settings.incident_min_confidence if incident_min_confidence is None else incident_min_confidence
        )

    # =========================================================================
    # Batch
    # =========================================================================

    async def run_batch(self, batch_size: Optional[int] = None, min_confidence: Optional[int] = None) -> BatchReport:
        settings = get_settings()
        batch_size = batch_size or settings.analysis_batch_size
        min_confidence = settings.analysis_min_confidence if min_confidence is None else min_confidence

        if not self.backend.is_available:
            raise ConfigurationError(
                f"Classification backend '{self.backend.name}' is not configured (missing API key)"
            )

        record_ids = await self.pending_record_ids(batch_size)
        report = BatchReport(perspectives_used=self.aggregator.perspective_names)
        if not record_ids:
            report.message = "No records to analyze"
            logger.info("Analysis batch: nothing to analyze")
            return report

        logger.info(
            "Starting analysis batch: %d records x %d perspectives (min confidence %d)",
            len(record_ids), len(report.perspectives_used), min_confidence,
        )

        for index, record_id in enumerate(record_ids):
            if index:
                await asyncio.sleep(self.throttle_seconds)
            try:
                outcome = await self.analyze_record(record_id, min_confidence)
            except (LegalWatchError, SQLAlchemyError) as e:
                await self.db.rollback()
                message = getattr(e, "message", None) or str(e) or e.__class__.__name__
                logger.error("Analysis of record %s failed: %s", record_id, message)
                report.errors.append({"record_id": record_id, "error": message})
                continue
            report.add(outcome)

        logger.info(
            "Analysis batch complete: %d analyzed, %d incidents, %d new / %d repeated patterns, %d errors",
            report.analyzed, report.total_incidents, report.new_patterns,
            report.repeated_patterns, len(report.errors),
        )
        return report

    async def pending_record_ids(self, batch_size: int) -> List[str]:
        """Newest received records that were never analysed."""
        result = await self.db.execute(
            select(CommunicationRecord.id)
            .where(CommunicationRecord.is_sent.is_(False))
            .where(CommunicationRecord.analysis_status.is_(None))
            .order_by(CommunicationRecord.received_at.desc())
            .limit(batch_size)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Single record
    # =========================================================================

    async def analyze_record(self, record_id: str, min_confidence: int) -> RecordOutcome:
        record = await self.db.get(CommunicationRecord, record_id)
        logger.info("Analyzing record %s: %s", record_id, (record.subject or "")[:50])

        context = await self.build_context(record)
        result = await self.aggregator.analyze(format_record(record), context, min_confidence)
        if result.all_failed:
            logger.warning("Every perspective failed for record %s", record_id)

        institution = institution_of(record.sender)
        recurrence = []
        for verdict in result.accepted:
            recurrence.append(await self.tracker.record_occurrence(
                institution, verdict.type, record.id, verdict.severity,
            ))

        record.analysis = DetectionAggregator.build_report(result, recurrence)
        record.analysis_status = result.analysis_status
        record.analyzed_at = utc_now()
        await self.db.commit()

        actions = decide(record, result.accepted, recurrence, self.incident_min_confidence)
        incidents_created, alerts_created = await self.apply(actions)

        return RecordOutcome(
            record_id=record_id,
            subject=record.subject,
            incidents_found=len(result.accepted),
            analysis_status=result.analysis_status,
            recurrence=recurrence,
            incidents_created=incidents_created,
            alerts_created=alerts_created,
        )

    async def build_context(self, record: CommunicationRecord) -> str:
        """Earlier messages of the thread plus incident types known for the sender."""
        context = ""

        if record.thread_id:
            result = await self.db.execute(
                select(CommunicationRecord)
                .where(CommunicationRecord.thread_id == record.thread_id)
                .where(CommunicationRecord.id != record.id)
                .order_by(CommunicationRecord.received_at.asc())
                .limit(THREAD_CONTEXT_LIMIT)
            )
            thread = result.scalars().all()
            if thread:
                context = "CONTEXTE DU FIL DE DISCUSSION:\n" + "\n\n".join(
                    f"[{'ENVOYÉ' if m.is_sent else 'REÇU'}] {m.subject}\n"
                    f"{(m.body or '')[:THREAD_BODY_PREVIEW]}..."
                    for m in thread
                )

        domain = institution_of(record.sender)
        result = await self.db.execute(
            select(CommunicationRecord.analysis)
            .where(CommunicationRecord.sender.icontains(domain, autoescape=True))
            .where(CommunicationRecord.analysis_status.is_not(None))
            .where(CommunicationRecord.id != record.id)
            .limit(SENDER_HISTORY_LIMIT)
        )
        known_types = dedupe([
            incident.get("type")
            for report in result.scalars().all()
            for incident in (report or {}).get("incidents_detected", [])
            if incident.get("type")
        ])
        if known_types:
            context += "\n\nPATTERNS CONNUS DE CET EXPÉDITEUR:\n- " + "\n- ".join(known_types)

        return context

    async def apply(self, actions: Sequence[CreateIncident]) -> Tuple[int, int]:
        """
        Write incidents (and their alerts). An incident already stored for
        the same (record, type) is left alone.
        Returns (incidents_created, alerts_created).
        """
        incidents_created = alerts_created = 0
        for action in actions:
            existing = await self.db.execute(
                select(Incident.id)
                .where(Incident.source_record_id == action.source_record_id)
                .where(Incident.type == action.type)
            )
            if existing.scalar_one_or_none() is not None:
                continue

            incident = Incident(**action.incident_fields())
            try:
                async with self.db.begin_nested():
                    self.db.add(incident)
                    await self.db.flush()
                    if action.alert is not None:
                        alert = action.alert
                        self.db.add(AuditAlert(
                            title=alert.title,
                            description=alert.description,
                            alert_type=alert.alert_type,
                            severity=alert.severity,
                            related_incident_id=incident.id,
                            related_record_id=alert.related_record_id,
                            legal_references=alert.legal_references,
                        ))
                        await self.db.flush()
            except IntegrityError:
                logger.info("Incident %s for record %s already exists", action.type, action.source_record_id)
                continue

            incidents_created += 1
            logger.info("Created incident: %s - %s", action.type, action.severity_label)
            if action.alert is not None:
                alerts_created += 1

        await self.db.commit()
        return incidents_created, alerts_created


async def run_analysis_batch(
    db: AsyncSession,
    batch_size: Optional[int] = None,
    min_confidence: Optional[int] = None,
    backend: Optional[ClassificationBackend] = None,
) -> BatchReport:
    """Convenience entry point used by the API and scripts."""
    return await AnalysisOrchestrator(db, backend=backend).run_batch(batch_size, min_confidence)

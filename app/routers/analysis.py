"""
Analysis API Router

Triggers multi-perspective detection batches and serves their products:
stored reports, recurrence patterns, incidents and alerts.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import ConfigurationError, NotFoundError
from app.core.utc import utc_now
from app.models.models import AuditAlert, CommunicationRecord, Incident, RecurrencePattern
from app.services.detection import (
    AnalysisOrchestrator,
    ClassificationBackend,
    get_classification_backend,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analysis", tags=["Analysis"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class BatchRequest(BaseModel):
    batch_size: int = Field(default=10, ge=1, le=100)
    min_confidence: int = Field(default=50, ge=0, le=100)


class RecordCreate(BaseModel):
    sender: str
    recipient: Optional[str] = None
    subject: str = ""
    body: str = ""
    received_at: Optional[datetime] = None
    thread_id: Optional[str] = None
    is_sent: bool = False


# =============================================================================
# BATCH
# =============================================================================

@router.post("/batch")
async def run_analysis_batch(
    request: BatchRequest,
    db: AsyncSession = Depends(get_db),
    backend: ClassificationBackend = Depends(get_classification_backend),
):
    """
    Analyse up to `batch_size` unanalysed incoming records.

    Always answers with a structured envelope: per-record failures are in
    `errors`; a missing classification provider answers 503 with
    error_code "configuration_error" before any record is touched.
    """
    try:
        report = await AnalysisOrchestrator(db, backend=backend).run_batch(request.batch_size, request.min_confidence)
    except ConfigurationError as e:
        logger.error("Analysis batch not started: %s", e.message)
        return JSONResponse(
            status_code=e.status_code,
            content={
                "success": False,
                "error": e.error_code,
                "error_code": e.error_code,
                "message": e.message,
                "analyzed": 0,
            },
        )
    return report.to_dict()


# =============================================================================
# RECORDS
# =============================================================================

@router.post("/records")
async def create_record(request: RecordCreate, db: AsyncSession = Depends(get_db)):
    """Queue a message for analysis."""
    record = CommunicationRecord(**request.model_dump(exclude={"received_at"}))
    record.received_at = request.received_at or utc_now()
    db.add(record)
    await db.flush()
    return {"success": True, "id": record.id}


@router.get("/records/{record_id}")
async def get_record_analysis(record_id: str, db: AsyncSession = Depends(get_db)):
    """Latest stored report of a record."""
    record = await db.get(CommunicationRecord, record_id)
    if record is None:
        raise NotFoundError("Record", record_id)
    return {
        "success": True,
        "record_id": record.id,
        "subject": record.subject,
        "analysis_status": record.analysis_status,
        "analyzed_at": record.analyzed_at.isoformat() if record.analyzed_at else None,
        "analysis": record.analysis,
    }


# =============================================================================
# PRODUCTS
# =============================================================================

@router.get("/patterns")
async def list_recurrence_patterns(
    institution: Optional[str] = Query(None),
    min_count: int = Query(1, ge=1),
    db: AsyncSession = Depends(get_db),
):
    """Recurrence patterns, most frequent first."""
    stmt = select(RecurrencePattern).where(RecurrencePattern.occurrence_count >= min_count)
    if institution:
        stmt = stmt.where(RecurrencePattern.institution == institution)
    patterns = (await db.execute(
        stmt.order_by(RecurrencePattern.occurrence_count.desc())
    )).scalars().all()

    return {
        "success": True,
        "patterns": [
            {
                "institution": p.institution,
                "violation_type": p.violation_type,
                "occurrence_count": p.occurrence_count,
                "first_occurrence": p.first_occurrence.isoformat(),
                "last_occurrence": p.last_occurrence.isoformat(),
                "related_record_ids": p.related_record_ids or [],
                "legal_implications": p.legal_implications,
            }
            for p in patterns
        ],
    }


@router.get("/incidents")
async def list_incidents(
    institution: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Incidents raised by detection, newest first."""
    stmt = select(Incident)
    if institution:
        stmt = stmt.where(Incident.institution == institution)
    incidents = (await db.execute(stmt.order_by(Incident.created_at.desc()).limit(limit))).scalars().all()

    return {
        "success": True,
        "incidents": [
            {
                "id": i.id,
                "title": i.title,
                "institution": i.institution,
                "type": i.type,
                "severity_label": i.severity_label,
                "priority_label": i.priority_label,
                "incident_date": i.incident_date.isoformat(),
                "source_record_id": i.source_record_id,
                "confidence_label": i.confidence_label,
                "evidence_payload": i.evidence_payload,
            }
            for i in incidents
        ],
    }


@router.get("/alerts")
async def list_alerts(
    unresolved_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """Escalation alerts for high and critical incidents."""
    stmt = select(AuditAlert)
    if unresolved_only:
        stmt = stmt.where(AuditAlert.is_resolved.is_(False))
    alerts = (await db.execute(stmt.order_by(AuditAlert.created_at.desc()))).scalars().all()

    return {
        "success": True,
        "alerts": [
            {
                "id": a.id,
                "title": a.title,
                "alert_type": a.alert_type,
                "severity": a.severity,
                "related_incident_id": a.related_incident_id,
                "related_record_id": a.related_record_id,
                "legal_references": a.legal_references,
                "is_resolved": a.is_resolved,
            }
            for a in alerts
        ],
    }

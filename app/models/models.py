"""
LegalWatch Database Models
SQLAlchemy ORM models for the legal corpus and the detection engine.

All datetime columns use DateTime(timezone=True) for proper UTC handling.
Use utc_now() from app.core.utc for all timestamp defaults.
"""

import uuid
from datetime import date, datetime
from typing import Optional
from sqlalchemy import (
    JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.core.utc import utc_now


# Type alias for timezone-aware DateTime columns
DateTimeTZ = DateTime(timezone=True)


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Legal Corpus - Instruments, Versions, Units, Sources
# =============================================================================

class LegalInstrument(Base):
    """
    A named legal text (statute, ordinance, regulation).

    Created on the first successful ingestion of its source; never deleted.
    instrument_uid is derived from the canonical source URL so every run
    lands on the same row.
    """
    __tablename__ = "legal_instruments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    instrument_uid: Mapped[str] = mapped_column(String(255), unique=True, index=True)

    title: Mapped[str] = mapped_column(String(255))
    abbreviation: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, index=True)  # CC, LPD, PA
    jurisdiction: Mapped[str] = mapped_column(String(10), default="CH", index=True)  # CH, VD, ...
    domain_tags: Mapped[list] = mapped_column(JSON, default=list)
    authority: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Lifecycle: in_force, repealed, abrogated, draft
    current_status: Mapped[str] = mapped_column(String(20), default="in_force", index=True)
    repealed_by_instrument_uid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)

    versions: Mapped[list["LegalVersion"]] = relationship(back_populates="instrument")


class LegalVersion(Base):
    """
    One consolidated snapshot of an instrument. Immutable once created.
    version_number is max+1 per instrument and never reused.
    """
    __tablename__ = "legal_versions"
    __table_args__ = (
        UniqueConstraint("instrument_id", "version_number", name="uq_legal_versions_instrument_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    instrument_id: Mapped[str] = mapped_column(String(36), ForeignKey("legal_instruments.id"), index=True)
    version_number: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(20), default="in_force")
    valid_from: Mapped[date] = mapped_column(Date)
    valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    consolidated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    source_set_hash: Mapped[str] = mapped_column(String(64))

    instrument: Mapped["LegalInstrument"] = relationship(back_populates="versions")
    sources: Mapped[list["LegalSource"]] = relationship(back_populates="version")


class LegalUnit(Base):
    """
    One citable fragment of a version: article, paragraph (alinéa) or letter.
    cite_key is unique within a version; hash_sha256 = sha256(content_text).
    """
    __tablename__ = "legal_units"
    __table_args__ = (
        UniqueConstraint("version_id", "cite_key", name="uq_legal_units_version_cite_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    version_id: Mapped[str] = mapped_column(String(36), ForeignKey("legal_versions.id"), index=True)
    instrument_id: Mapped[str] = mapped_column(String(36), ForeignKey("legal_instruments.id"), index=True)

    cite_key: Mapped[str] = mapped_column(String(100), index=True)  # "art. 389 al. 2 let. a"
    unit_type: Mapped[str] = mapped_column(String(20))  # article, paragraph, letter
    article_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    paragraph_number: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    letter: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    content_text: Mapped[str] = mapped_column(Text)
    hash_sha256: Mapped[str] = mapped_column(String(64), index=True)
    keywords: Mapped[list] = mapped_column(JSON, default=list)
    order_index: Mapped[int] = mapped_column(Integer)
    is_key_unit: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


class LegalSource(Base):
    """Where a version's text was fetched from. One primary per version."""
    __tablename__ = "legal_sources"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    version_id: Mapped[str] = mapped_column(String(36), ForeignKey("legal_versions.id"), index=True)
    source_url: Mapped[str] = mapped_column(String(1000))
    source_type: Mapped[str] = mapped_column(String(30), default="official")  # html, pdf, official
    authority: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    checksum: Mapped[str] = mapped_column(String(64))

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    version: Mapped["LegalVersion"] = relationship(back_populates="sources")


class SourceCatalogEntry(Base):
    """Registered legal source that catalog-driven ingestion runs pick up."""
    __tablename__ = "source_catalog"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    source_url: Mapped[str] = mapped_column(String(1000), unique=True)
    source_type: Mapped[str] = mapped_column(String(30), default="html")
    authority: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    jurisdiction: Mapped[str] = mapped_column(String(10), default="CH", index=True)
    domain_tags: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


# =============================================================================
# Ingestion Ledger
# =============================================================================

class IngestionRun(Base):
    """One ingestion pass over a set of sources. Never retried in place."""
    __tablename__ = "ingestion_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    run_type: Mapped[str] = mapped_column(String(20))  # full, incremental
    jurisdiction_scope: Mapped[str] = mapped_column(String(10), default="ALL")
    # running, completed, completed_with_errors
    status: Mapped[str] = mapped_column(String(30), default="running")

    items_total: Mapped[int] = mapped_column(Integer, default=0)
    items_success: Mapped[int] = mapped_column(Integer, default=0)
    items_failed: Mapped[int] = mapped_column(Integer, default=0)
    items_skipped: Mapped[int] = mapped_column(Integer, default=0)
    error_summary: Mapped[list] = mapped_column(JSON, default=list)

    started_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)


class IngestionItem(Base):
    """Per-source outcome within a run."""
    __tablename__ = "ingestion_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("ingestion_runs.id"), index=True)
    source_url: Mapped[str] = mapped_column(String(1000), index=True)
    # pending, processing, success, skipped, failed
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)

    instrument_uid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    raw_content_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    units_created: Mapped[int] = mapped_column(Integer, default=0)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, index=True)


class IngestionError(Base):
    """Append-only error ledger, one row per failed source."""
    __tablename__ = "ingestion_errors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    run_id: Mapped[str] = mapped_column(String(36), ForeignKey("ingestion_runs.id"), index=True)
    source_url: Mapped[str] = mapped_column(String(1000))
    error_type: Mapped[str] = mapped_column(String(30), default="processing")  # fetch, parse, persist, processing
    error_message: Mapped[str] = mapped_column(Text)
    recoverable: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


# =============================================================================
# Correspondence & Detection
# =============================================================================

class CommunicationRecord(Base):
    """
    One email (or similar message) subject to multi-perspective analysis.

    analysis holds the latest aggregated report and is replaced wholesale
    on every pass. analysis_status is NULL until analysed, then either
    "analyzed" or "analysis_unavailable" (every perspective failed).
    """
    __tablename__ = "communication_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    sender: Mapped[str] = mapped_column(String(255), index=True)
    recipient: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subject: Mapped[str] = mapped_column(String(500), default="")
    body: Mapped[str] = mapped_column(Text, default="")
    received_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, index=True)
    thread_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    is_sent: Mapped[bool] = mapped_column(Boolean, default=False)

    analysis: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    analysis_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True, index=True)
    analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)


class RecurrencePattern(Base):
    """
    Counter of repeated violations for one (institution, violation_type).
    Exactly one row per pair; occurrence_count only grows.
    """
    __tablename__ = "recurrence_patterns"
    __table_args__ = (
        UniqueConstraint("institution", "violation_type", name="uq_recurrence_institution_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    institution: Mapped[str] = mapped_column(String(255), index=True)
    violation_type: Mapped[str] = mapped_column(String(50))

    occurrence_count: Mapped[int] = mapped_column(Integer, default=1)
    first_occurrence: Mapped[date] = mapped_column(Date)
    last_occurrence: Mapped[date] = mapped_column(Date)
    related_record_ids: Mapped[list] = mapped_column(JSON, default=list)
    legal_implications: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)


class Incident(Base):
    """Durable incident raised from a high-confidence verdict."""
    __tablename__ = "incidents"
    __table_args__ = (
        UniqueConstraint("source_record_id", "type", name="uq_incidents_record_type"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(255))
    facts: Mapped[str] = mapped_column(Text, default="")
    dysfunction: Mapped[str] = mapped_column(Text, default="")  # evidence quotes, one per line
    institution: Mapped[str] = mapped_column(String(255), index=True)
    type: Mapped[str] = mapped_column(String(50))
    severity_label: Mapped[str] = mapped_column(String(20))  # Critique, Haute, Moyenne
    priority_label: Mapped[str] = mapped_column(String(20))  # critique, haute, normale
    incident_date: Mapped[date] = mapped_column(Date)
    source_record_id: Mapped[str] = mapped_column(String(36), ForeignKey("communication_records.id"), index=True)
    confidence_label: Mapped[str] = mapped_column(String(10))  # "85%"
    score: Mapped[int] = mapped_column(Integer)
    evidence_payload: Mapped[dict] = mapped_column(JSON, default=dict)  # {articles, evidence, recurrence}

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)


class AuditAlert(Base):
    """Escalation alert for high / critical incidents."""
    __tablename__ = "audit_alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    alert_type: Mapped[str] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(20))  # critical, warning
    related_incident_id: Mapped[str] = mapped_column(String(36), ForeignKey("incidents.id"), index=True)
    related_record_id: Mapped[str] = mapped_column(String(36), ForeignKey("communication_records.id"))
    legal_references: Mapped[dict] = mapped_column(JSON, default=dict)  # {articles}
    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

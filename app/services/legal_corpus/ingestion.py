"""
Legal Text Ingestion Runner
===========================

One run walks a list of sources and, for each:

    fetch -> hash -> (incremental: skip if unchanged) -> html to text
          -> ensure instrument -> new version -> primary source
          -> parse units -> persist units

Every source gets an IngestionItem (pending -> processing -> success |
skipped | failed). Failures land in the append-only IngestionError ledger
and never stop the remaining sources. A run is never retried in place.

Sources are processed one after another: version numbering (max + 1)
depends on the outcome of the previous source for the same instrument.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import FetchError, LegalWatchError, ParseError, PersistError
from app.core.utc import utc_now
from app.models.models import IngestionError, IngestionItem, IngestionRun, SourceCatalogEntry
from app.services.legal_corpus.corpus_store import CorpusStore
from app.services.legal_corpus.fetcher import FetchedDocument, SourceFetcher, document_text
from app.services.legal_corpus.hashing import sha256_hex, source_set_hash
from app.services.legal_corpus.unit_parser import parse

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200
MAX_REPORTED_ERRORS = 10
ABBREVIATION_RE = re.compile(r"\(([A-Z][A-Za-z]{0,9})\)\s*$")
EXTENSION_RE = re.compile(r"\.[^.]+$")


# =============================================================================
# Request / Result Models
# =============================================================================

class IngestionRequest(BaseModel):
    """Parameters of one ingestion run."""
    fetch_mode: Literal["full", "incremental"] = "incremental"
    jurisdiction_scope: str = Field(default="ALL", description="CH, VD, ... or ALL")
    source_urls: Optional[List[str]] = None
    domain_filter: Optional[List[str]] = None


@dataclass
class SourceSpec:
    source_url: str
    source_type: str = "html"
    authority: Optional[str] = None
    jurisdiction: str = "CH"
    domain_tags: List[str] = field(default_factory=list)


@dataclass
class ItemOutcome:
    source_url: str
    status: str
    instrument_uid: Optional[str] = None
    units_created: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "source_url": self.source_url,
            "status": self.status,
            "instrument_uid": self.instrument_uid,
            "units_created": self.units_created,
            "error": self.error,
        }


@dataclass
class IngestionReport:
    run_id: str
    status: str
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    items: List[ItemOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "run_id": self.run_id,
            "status": self.status,
            "stats": {
                "total": self.total,
                "success": self.success,
                "failed": self.failed,
                "skipped": self.skipped,
            },
            "errors": self.errors[:MAX_REPORTED_ERRORS],
            "items": [item.to_dict() for item in self.items],
        }


# =============================================================================
# Helpers
# =============================================================================

def derive_instrument_uid(source_url: str) -> str:
    """
    Stable instrument id from the source location: last two path segments
    joined by '_', extension stripped. URLs without a path fall back to a
    hash of the URL.
    """
    segments = [s for s in urlparse(source_url).path.split("/") if s]
    uid = EXTENSION_RE.sub("", "_".join(segments[-2:]))
    return uid or f"manual_{sha256_hex(source_url)[:12]}"


def extract_title(text: str, fallback: str) -> str:
    for line in text.split("\n"):
        if line.strip():
            return line.strip()[:MAX_TITLE_LENGTH]
    return fallback


def extract_abbreviation(title: str) -> Optional[str]:
    """'Code civil suisse (CC)' -> 'CC'"""
    match = ABBREVIATION_RE.search(title)
    return match.group(1) if match else None


def _error_type(error: Exception) -> str:
    if isinstance(error, FetchError):
        return "fetch"
    if isinstance(error, ParseError):
        return "parse"
    if isinstance(error, (PersistError, SQLAlchemyError)):
        return "persist"
    return "processing"


# =============================================================================
# Runner
# =============================================================================

class IngestionRunner:
    """
    Orchestrates one ingestion run.

    The ledger (run, items, errors) is committed as it progresses; the
    corpus writes of each source sit inside a savepoint so a failing
    source leaves no half-built instrument or version behind.
    """

    def __init__(self, db: AsyncSession, fetcher: Optional[SourceFetcher] = None):
        self.db = db
        self.store = CorpusStore(db)
        self.fetcher = fetcher or SourceFetcher()

    async def resolve_sources(self, request: IngestionRequest) -> List[SourceSpec]:
        """Explicit URLs win; otherwise read the active catalog."""
        if request.source_urls:
            return [
                SourceSpec(
                    source_url=url,
                    source_type="html",
                    authority="manual",
                    jurisdiction=request.jurisdiction_scope,
                )
                for url in request.source_urls
            ]

        query = select(SourceCatalogEntry).where(SourceCatalogEntry.is_active.is_(True))
        if request.jurisdiction_scope != "ALL":
            query = query.where(SourceCatalogEntry.jurisdiction == request.jurisdiction_scope)
        result = await self.db.execute(query.order_by(SourceCatalogEntry.created_at))
        entries = result.scalars().all()

        if request.domain_filter:
            wanted = set(request.domain_filter)
            entries = [e for e in entries if wanted.intersection(e.domain_tags or [])]

        return [
            SourceSpec(
                source_url=e.source_url,
                source_type=e.source_type,
                authority=e.authority,
                jurisdiction=e.jurisdiction,
                domain_tags=list(e.domain_tags or []),
            )
            for e in entries
        ]

    async def run(self, request: IngestionRequest) -> IngestionReport:
        run = IngestionRun(
            run_type=request.fetch_mode,
            jurisdiction_scope=request.jurisdiction_scope,
            status="running",
        )
        self.db.add(run)
        await self.db.commit()
        run_id = run.id

        sources = await self.resolve_sources(request)
        logger.info(
            "Starting %s ingestion run %s for %s (%d sources)",
            request.fetch_mode, run_id, request.jurisdiction_scope, len(sources),
        )

        items = [
            IngestionItem(run_id=run_id, source_url=source.source_url, status="pending")
            for source in sources
        ]
        self.db.add_all(items)
        await self.db.commit()
        item_ids = [item.id for item in items]

        report = IngestionReport(run_id=run_id, status="running")
        for item_id, source in zip(item_ids, sources):
            outcome = await self._process_source(run_id, item_id, source, request.fetch_mode)
            report.items.append(outcome)
            report.total += 1
            if outcome.status == "success":
                report.success += 1
            elif outcome.status == "skipped":
                report.skipped += 1
            else:
                report.failed += 1
                report.errors.append({"source": outcome.source_url, "error": outcome.error or ""})

        report.status = "completed" if report.failed == 0 else "completed_with_errors"
        run = await self.db.get(IngestionRun, run_id)
        run.status = report.status
        run.completed_at = utc_now()
        run.items_total = report.total
        run.items_success = report.success
        run.items_failed = report.failed
        run.items_skipped = report.skipped
        run.error_summary = report.errors[:MAX_REPORTED_ERRORS]
        await self.db.commit()

        logger.info(
            "Ingestion run %s %s: %d total, %d success, %d skipped, %d failed",
            run_id, report.status, report.total, report.success, report.skipped, report.failed,
        )
        return report

    async def _process_source(
        self,
        run_id: str,
        item_id: str,
        source: SourceSpec,
        fetch_mode: str,
    ) -> ItemOutcome:
        item = await self.db.get(IngestionItem, item_id)
        item.status = "processing"
        await self.db.commit()
        started = time.monotonic()

        try:
            document = await self.fetcher.fetch(source.source_url)
            content_hash = sha256_hex(document.raw_content)

            if fetch_mode == "incremental":
                previous = await self.store.latest_success_hash(source.source_url)
                if previous == content_hash:
                    item.status = "skipped"
                    item.raw_content_hash = content_hash
                    item.processing_time_ms = int((time.monotonic() - started) * 1000)
                    await self.db.commit()
                    logger.info("Unchanged, skipped: %s", source.source_url)
                    return ItemOutcome(source.source_url, "skipped")

            instrument_uid, units_created = await self._ingest_document(source, document, content_hash)
        except (LegalWatchError, SQLAlchemyError) as e:
            return await self._record_failure(run_id, item_id, source, e)

        item.status = "success"
        item.instrument_uid = instrument_uid
        item.raw_content_hash = content_hash
        item.units_created = units_created
        item.processing_time_ms = int((time.monotonic() - started) * 1000)
        await self.db.commit()

        logger.info("Processed %s: %d units", source.source_url, units_created)
        return ItemOutcome(source.source_url, "success", instrument_uid, units_created)

    async def _ingest_document(
        self,
        source: SourceSpec,
        document: FetchedDocument,
        content_hash: str,
    ) -> Tuple[str, int]:
        """Corpus writes for one source, inside a savepoint."""
        try:
            text = document_text(document)
            instrument_uid = derive_instrument_uid(source.source_url)
            units = parse(text, instrument_uid)
        except LegalWatchError:
            raise
        except Exception as e:
            raise ParseError(f"Could not parse {source.source_url}: {e}") from e

        async with self.db.begin_nested():
            title = extract_title(text, instrument_uid)
            instrument = await self.store.ensure_instrument(
                instrument_uid,
                {
                    "title": title,
                    "abbreviation": extract_abbreviation(title),
                    "jurisdiction": source.jurisdiction or "CH",
                    "domain_tags": source.domain_tags,
                    "authority": source.authority,
                    "current_status": "in_force",
                },
            )
            version = await self.store.create_version(
                instrument.id,
                source_set_hash=source_set_hash(source.source_url, content_hash),
            )
            await self.store.add_source(
                version.id,
                source.source_url,
                checksum=content_hash,
                source_type=source.source_type or "official",
                authority=source.authority,
                is_primary=True,
            )
            units_created = await self.store.persist_units(version, units)

        return instrument_uid, units_created

    async def _record_failure(
        self,
        run_id: str,
        item_id: str,
        source: SourceSpec,
        error: Exception,
    ) -> ItemOutcome:
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        logger.error("Failed to process %s: %s", source.source_url, message)

        if isinstance(error, SQLAlchemyError):
            # Session may be unusable after a failed statement outside a savepoint
            await self.db.rollback()
        item = await self.db.get(IngestionItem, item_id)
        item.status = "failed"
        self.db.add(IngestionError(
            run_id=run_id,
            source_url=source.source_url,
            error_type=_error_type(error),
            error_message=message,
            recoverable=not isinstance(error, ParseError),
        ))
        await self.db.commit()
        return ItemOutcome(source.source_url, "failed", error=message)


async def run_ingestion(db: AsyncSession, request: IngestionRequest, fetcher: Optional[SourceFetcher] = None) -> IngestionReport:
    """Convenience entry point used by the API and scripts."""
    return await IngestionRunner(db, fetcher=fetcher).run(request)

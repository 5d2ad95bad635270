"""
Ingestion API Router

Triggers legal corpus ingestion runs and exposes the run ledger.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.errors import NotFoundError
from app.models.models import IngestionError, IngestionItem, IngestionRun, SourceCatalogEntry
from app.services.legal_corpus import IngestionRequest, IngestionRunner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingestion", tags=["Ingestion"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class CatalogSourceRequest(BaseModel):
    source_url: str
    source_type: str = "html"
    authority: Optional[str] = None
    jurisdiction: str = "CH"
    domain_tags: List[str] = Field(default_factory=list)


# =============================================================================
# RUN ENDPOINTS
# =============================================================================

@router.post("/runs")
async def start_ingestion_run(request: IngestionRequest, db: AsyncSession = Depends(get_db)):
    """
    Run an ingestion pass synchronously.

    - fetch_mode: "incremental" skips sources whose content hash is unchanged
    - jurisdiction_scope: filter catalog sources ("ALL" for every jurisdiction)
    - source_urls: explicit sources; the catalog is ignored when given
    - domain_filter: keep catalog sources sharing at least one domain tag

    Per-source failures are reported in the envelope, never as an HTTP error.
    """
    report = await IngestionRunner(db).run(request)
    return report.to_dict()


@router.get("/runs/{run_id}")
async def get_ingestion_run(run_id: str, db: AsyncSession = Depends(get_db)):
    """Run counters, per-source items and the error ledger."""
    run = await db.get(IngestionRun, run_id)
    if run is None:
        raise NotFoundError("Ingestion run", run_id)

    items = (await db.execute(
        select(IngestionItem).where(IngestionItem.run_id == run_id).order_by(IngestionItem.created_at)
    )).scalars().all()
    errors = (await db.execute(
        select(IngestionError).where(IngestionError.run_id == run_id).order_by(IngestionError.created_at)
    )).scalars().all()

    return {
        "success": True,
        "run": {
            "id": run.id,
            "run_type": run.run_type,
            "jurisdiction_scope": run.jurisdiction_scope,
            "status": run.status,
            "stats": {
                "total": run.items_total,
                "success": run.items_success,
                "failed": run.items_failed,
                "skipped": run.items_skipped,
            },
            "started_at": run.started_at.isoformat() if run.started_at else None,
            "completed_at": run.completed_at.isoformat() if run.completed_at else None,
        },
        "items": [
            {
                "source_url": i.source_url,
                "status": i.status,
                "instrument_uid": i.instrument_uid,
                "units_created": i.units_created,
                "processing_time_ms": i.processing_time_ms,
            }
            for i in items
        ],
        "errors": [
            {
                "source_url": e.source_url,
                "error_type": e.error_type,
                "error_message": e.error_message,
                "recoverable": e.recoverable,
            }
            for e in errors
        ],
    }


# =============================================================================
# CATALOG ENDPOINTS
# =============================================================================

@router.post("/catalog")
async def register_catalog_source(request: CatalogSourceRequest, db: AsyncSession = Depends(get_db)):
    """Register (or reactivate) a source picked up by catalog-driven runs."""
    existing = (await db.execute(
        select(SourceCatalogEntry).where(SourceCatalogEntry.source_url == request.source_url)
    )).scalar_one_or_none()

    if existing is None:
        entry = SourceCatalogEntry(**request.model_dump())
        db.add(entry)
    else:
        entry = existing
        for key, value in request.model_dump().items():
            setattr(entry, key, value)
        entry.is_active = True
    await db.flush()

    logger.info("Catalog source registered: %s", request.source_url)
    return {"success": True, "id": entry.id, "source_url": entry.source_url}

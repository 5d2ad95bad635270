"""
Legal Corpus API Router

Read-only lookups over the ingested corpus: instruments, point-in-time
units by citation key, status, unit search and citation resolution.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.services.legal_corpus import LegalQueryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/legal", tags=["Legal Corpus"])


# =============================================================================
# INSTRUMENTS
# =============================================================================

@router.get("/instruments")
async def search_instruments(
    query: Optional[str] = Query(None, description="Matches title, abbreviation or uid"),
    jurisdiction: Optional[str] = Query(None),
    domain_tags: Optional[List[str]] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """In-force instruments, optionally filtered."""
    instruments = await LegalQueryService(db).search_instruments(query, jurisdiction, domain_tags, limit)
    return {"success": True, "instruments": instruments, "count": len(instruments)}


@router.get("/instruments/{instrument_uid}")
async def get_instrument(instrument_uid: str, db: AsyncSession = Depends(get_db)):
    """Instrument with its version history and unit counts."""
    details = await LegalQueryService(db).get_instrument(instrument_uid)
    return {"success": True, **details}


@router.get("/instruments/{instrument_uid}/status")
async def get_instrument_status(instrument_uid: str, db: AsyncSession = Depends(get_db)):
    """Whether the instrument is in force, and its replacement if repealed."""
    status = await LegalQueryService(db).resolve_status(instrument_uid)
    return {"success": True, **status}


@router.get("/instruments/{instrument_uid}/units/{cite_key}")
async def get_unit(
    instrument_uid: str,
    cite_key: str,
    at_date: Optional[date] = Query(None, alias="date", description="Point in time (YYYY-MM-DD), default today"),
    db: AsyncSession = Depends(get_db),
):
    """
    Unit by citation key ("art. 389 al. 1 let. a") in the version applicable
    at the given date.
    """
    unit = await LegalQueryService(db).get_unit(instrument_uid, cite_key, at_date)
    return {"success": True, **unit}


# =============================================================================
# SEARCH
# =============================================================================

@router.get("/units/search")
async def search_units(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Keyword search over current versions, falling back to text search."""
    results = await LegalQueryService(db).search_units(q, limit)
    return {"success": True, **results}


@router.get("/citations/resolve")
async def resolve_citation(
    citation: str = Query(..., min_length=3, description='e.g. "art. 17 LEO"'),
    at_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
):
    """Resolve a free-text citation to a stored unit."""
    resolved = await LegalQueryService(db).resolve_citation(citation, at_date)
    return {"success": True, **resolved}

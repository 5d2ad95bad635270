"""
Legal Query Service
Read-side lookups over the ingested corpus: instrument search, point-in-time
unit retrieval by citation key, status resolution and free citation parsing
("art. 17 LEO", "art. 406 al. 1 CC").
"""

import logging
import re
from collections import Counter
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, ValidationError
from app.core.utc import utc_today
from app.models.models import LegalInstrument, LegalSource, LegalUnit, LegalVersion
from app.services.legal_corpus.corpus_store import CorpusStore
from app.services.legal_corpus.unit_parser import extract_keywords

logger = logging.getLogger(__name__)

CITATION_RE = re.compile(
    r"art(?:icle)?\.?\s*(\d+[a-z]*)"
    r"(?:\s+al\.\s*(\d+))?"
    r"(?:\s+let\.\s*([a-z]))?"
    r"\s+([A-Z][A-Za-z]{1,9})\b",
    re.IGNORECASE,
)
WHITESPACE_RE = re.compile(r"\s+")


def normalize_cite_key(cite_key: str) -> str:
    """'Art.  389 AL. 2' -> 'art. 389 al. 2'"""
    return WHITESPACE_RE.sub(" ", cite_key.lower()).strip()


def instrument_to_dict(instrument: LegalInstrument) -> Dict[str, Any]:
    return {
        "id": instrument.id,
        "instrument_uid": instrument.instrument_uid,
        "title": instrument.title,
        "abbreviation": instrument.abbreviation,
        "jurisdiction": instrument.jurisdiction,
        "domain_tags": instrument.domain_tags or [],
        "authority": instrument.authority,
        "current_status": instrument.current_status,
    }


def version_to_dict(version: LegalVersion) -> Dict[str, Any]:
    return {
        "id": version.id,
        "version_number": version.version_number,
        "status": version.status,
        "valid_from": version.valid_from.isoformat() if version.valid_from else None,
        "valid_to": version.valid_to.isoformat() if version.valid_to else None,
        "source_set_hash": version.source_set_hash,
    }


def unit_to_dict(unit: LegalUnit) -> Dict[str, Any]:
    return {
        "id": unit.id,
        "cite_key": unit.cite_key,
        "unit_type": unit.unit_type,
        "article_number": unit.article_number,
        "paragraph_number": unit.paragraph_number,
        "letter": unit.letter,
        "title": unit.title,
        "content_text": unit.content_text,
        "hash_sha256": unit.hash_sha256,
        "keywords": unit.keywords or [],
        "order_index": unit.order_index,
        "is_key_unit": unit.is_key_unit,
    }


class LegalQueryService:
    """Corpus lookups bound to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = CorpusStore(db)

    async def _require_instrument(self, instrument_uid: str) -> LegalInstrument:
        instrument = await self.store.get_instrument(instrument_uid)
        if instrument is None:
            raise NotFoundError("Instrument", instrument_uid)
        return instrument

    async def search_instruments(
        self,
        query: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        domain_tags: Optional[List[str]] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """In-force instruments matching title / abbreviation, jurisdiction and tags."""
        stmt = select(LegalInstrument).where(LegalInstrument.current_status == "in_force")
        if query:
            stmt = stmt.where(or_(
                LegalInstrument.title.icontains(query, autoescape=True),
                LegalInstrument.abbreviation.icontains(query, autoescape=True),
                LegalInstrument.instrument_uid.icontains(query, autoescape=True),
            ))
        if jurisdiction:
            stmt = stmt.where(LegalInstrument.jurisdiction == jurisdiction)

        result = await self.db.execute(stmt.order_by(LegalInstrument.title))
        instruments = list(result.scalars().all())
        if domain_tags:
            wanted = set(domain_tags)
            instruments = [i for i in instruments if wanted.intersection(i.domain_tags or [])]

        return [instrument_to_dict(i) for i in instruments[:limit]]

    async def get_instrument(self, instrument_uid: str) -> Dict[str, Any]:
        """Instrument, its versions (with sources) and unit counts per type."""
        instrument = await self._require_instrument(instrument_uid)

        versions_result = await self.db.execute(
            select(LegalVersion)
            .where(LegalVersion.instrument_id == instrument.id)
            .order_by(LegalVersion.version_number)
        )
        versions = []
        for version in versions_result.scalars().all():
            sources_result = await self.db.execute(
                select(LegalSource).where(LegalSource.version_id == version.id)
            )
            entry = version_to_dict(version)
            entry["sources"] = [
                {
                    "source_url": s.source_url,
                    "source_type": s.source_type,
                    "authority": s.authority,
                    "is_primary": s.is_primary,
                    "checksum": s.checksum,
                }
                for s in sources_result.scalars().all()
            ]
            versions.append(entry)

        types_result = await self.db.execute(
            select(LegalUnit.unit_type).where(LegalUnit.instrument_id == instrument.id)
        )
        unit_counts = dict(Counter(types_result.scalars().all()))

        return {
            "instrument": instrument_to_dict(instrument),
            "versions": versions,
            "unit_counts": unit_counts,
        }

    async def version_at(self, instrument: LegalInstrument, at_date: Optional[date] = None) -> Optional[LegalVersion]:
        """Highest in-force version whose validity window contains the date."""
        at_date = at_date or utc_today()
        result = await self.db.execute(
            select(LegalVersion)
            .where(LegalVersion.instrument_id == instrument.id)
            .where(LegalVersion.status == "in_force")
            .where(LegalVersion.valid_from <= at_date)
            .where(or_(LegalVersion.valid_to.is_(None), LegalVersion.valid_to >= at_date))
            .order_by(LegalVersion.version_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_unit(
        self,
        instrument_uid: str,
        cite_key: str,
        at_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Unit by citation key in the version applicable at `at_date`.

        An exact key match wins; otherwise the first unit (document order)
        nested under the requested key, so "art. 389" may resolve to
        "art. 389 al. 1" but "art. 1" never to "art. 10".
        """
        instrument = await self._require_instrument(instrument_uid)
        version = await self.version_at(instrument, at_date)
        if version is None:
            raise NotFoundError(
                "Version", f"{instrument_uid} at {(at_date or utc_today()).isoformat()}"
            )

        wanted = normalize_cite_key(cite_key)
        result = await self.db.execute(
            select(LegalUnit)
            .where(LegalUnit.version_id == version.id)
            .where(or_(
                LegalUnit.cite_key == wanted,
                LegalUnit.cite_key.startswith(f"{wanted} ", autoescape=True),
            ))
            .order_by(LegalUnit.order_index)
        )
        matches = list(result.scalars().all())
        exact = next((u for u in matches if u.cite_key == wanted), None)
        unit = exact or (matches[0] if matches else None)

        source_result = await self.db.execute(
            select(LegalSource.source_url)
            .where(LegalSource.version_id == version.id)
            .where(LegalSource.is_primary.is_(True))
            .limit(1)
        )
        version_info = version_to_dict(version)
        version_info["source_url"] = source_result.scalar_one_or_none()

        return {
            "instrument_uid": instrument_uid,
            "unit": unit_to_dict(unit) if unit else None,
            "all_matches": [unit_to_dict(u) for u in matches],
            "version": version_info,
        }

    async def resolve_status(self, instrument_uid: str) -> Dict[str, Any]:
        """Current status, and the replacing instrument when repealed."""
        instrument = await self._require_instrument(instrument_uid)

        replaced_by = None
        if instrument.repealed_by_instrument_uid:
            replacement = await self.store.get_instrument(instrument.repealed_by_instrument_uid)
            if replacement is not None:
                replaced_by = {
                    "instrument_uid": replacement.instrument_uid,
                    "title": replacement.title,
                    "abbreviation": replacement.abbreviation,
                    "current_status": replacement.current_status,
                }

        return {
            "instrument_uid": instrument.instrument_uid,
            "title": instrument.title,
            "abbreviation": instrument.abbreviation,
            "status": instrument.current_status,
            "in_force": instrument.current_status == "in_force",
            "replaced_by": replaced_by,
            "last_checked": instrument.updated_at.isoformat() if instrument.updated_at else None,
        }

    async def search_units(self, query: str, limit: int = 20) -> Dict[str, Any]:
        """Keyword search over current versions, substring search as fallback."""
        if not query or not query.strip():
            raise ValidationError("query required for unit search")

        units, search_type = await self.store.find_units(
            extract_keywords(query), fallback_text=query, limit=limit,
        )
        return {
            "units": [unit_to_dict(u) for u in units],
            "count": len(units),
            "search_type": search_type,
        }

    async def resolve_citation(self, citation: str, at_date: Optional[date] = None) -> Dict[str, Any]:
        """
        Resolve a free-text citation against instrument abbreviations.

            "art. 17 LEO"          -> art. 17 of the instrument abbreviated LEO
            "art. 406 al. 1 CC"    -> art. 406 al. 1 of CC
        """
        match = CITATION_RE.search(citation)
        if not match:
            raise ValidationError(f"Unrecognized citation: {citation}")

        article, paragraph, letter, abbreviation = match.groups()
        cite_key = f"art. {article.lower()}"
        if paragraph:
            cite_key += f" al. {paragraph}"
            if letter:
                cite_key += f" let. {letter.lower()}"

        result = await self.db.execute(
            select(LegalInstrument)
            .where(LegalInstrument.abbreviation == abbreviation)
            .order_by(LegalInstrument.current_status != "in_force")
            .limit(1)
        )
        instrument = result.scalar_one_or_none()
        if instrument is None:
            raise NotFoundError("Instrument abbreviation", abbreviation)

        resolved = await self.get_unit(instrument.instrument_uid, cite_key, at_date)
        resolved["citation"] = citation
        resolved["cite_key"] = cite_key
        resolved["abbreviation"] = abbreviation
        return resolved

"""
Corpus Store
============

Persistence for legal instruments, versions, sources and units.

All writes go through idempotent, natural-key operations:
- ensure_instrument: get-or-create by instrument_uid
- create_version: always a new row numbered max+1 per instrument
- persist_units: bulk insert where one bad unit never sinks the batch

Lookups used by detection (keyword search with text-search fallback) live
here as well so nothing else queries legal_units directly.
"""

import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import Text, and_, cast, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistError
from app.core.locks import KeyedLocks
from app.core.utc import utc_today
from app.models.models import (
    IngestionItem,
    LegalInstrument,
    LegalSource,
    LegalUnit,
    LegalVersion,
)
from app.services.legal_corpus.unit_parser import ParsedUnit

logger = logging.getLogger(__name__)

VERSION_INSERT_RETRIES = 3

# Shared across stores: version numbering must be serialized per instrument
_version_locks = KeyedLocks()


def current_version_ids():
    """Select the id of the highest-numbered version of every instrument."""
    latest = (
        select(
            LegalVersion.instrument_id,
            func.max(LegalVersion.version_number).label("max_number"),
        )
        .group_by(LegalVersion.instrument_id)
        .subquery()
    )
    return select(LegalVersion.id).join(
        latest,
        and_(
            LegalVersion.instrument_id == latest.c.instrument_id,
            LegalVersion.version_number == latest.c.max_number,
        ),
    )


class CorpusStore:
    """Corpus persistence bound to one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Instruments
    # =========================================================================

    async def get_instrument(self, instrument_uid: str) -> Optional[LegalInstrument]:
        result = await self.db.execute(
            select(LegalInstrument).where(LegalInstrument.instrument_uid == instrument_uid)
        )
        return result.scalar_one_or_none()

    async def ensure_instrument(self, instrument_uid: str, defaults: Dict[str, Any]) -> LegalInstrument:
        """
        Return the instrument for `instrument_uid`, creating it from
        `defaults` when absent. Existing rows are returned untouched.
        """
        existing = await self.get_instrument(instrument_uid)
        if existing is not None:
            return existing

        instrument = LegalInstrument(instrument_uid=instrument_uid, **defaults)
        try:
            async with self.db.begin_nested():
                self.db.add(instrument)
                await self.db.flush()
        except IntegrityError:
            # Created concurrently by another session
            existing = await self.get_instrument(instrument_uid)
            if existing is None:
                raise PersistError(f"Could not create instrument {instrument_uid}")
            return existing

        logger.info("Created instrument %s", instrument_uid)
        return instrument

    # =========================================================================
    # Versions & Sources
    # =========================================================================

    async def latest_version_number(self, instrument_id: str) -> int:
        result = await self.db.execute(
            select(func.max(LegalVersion.version_number)).where(
                LegalVersion.instrument_id == instrument_id
            )
        )
        return result.scalar_one_or_none() or 0

    async def create_version(
        self,
        instrument_id: str,
        source_set_hash: str,
        valid_from: Optional[date] = None,
        status: str = "in_force",
    ) -> LegalVersion:
        """
        Append a new version numbered max(existing) + 1.

        Numbering is serialized per instrument in-process; a unique
        constraint violation from another process triggers a re-read.
        """
        async with _version_locks.hold(instrument_id):
            for attempt in range(1, VERSION_INSERT_RETRIES + 1):
                number = await self.latest_version_number(instrument_id) + 1
                version = LegalVersion(
                    instrument_id=instrument_id,
                    version_number=number,
                    status=status,
                    valid_from=valid_from or utc_today(),
                    source_set_hash=source_set_hash,
                )
                try:
                    async with self.db.begin_nested():
                        self.db.add(version)
                        await self.db.flush()
                    return version
                except IntegrityError:
                    logger.warning(
                        "Version %d of instrument %s already taken (attempt %d/%d)",
                        number, instrument_id, attempt, VERSION_INSERT_RETRIES,
                    )

        raise PersistError(f"Could not allocate a version number for instrument {instrument_id}")

    async def add_source(
        self,
        version_id: str,
        source_url: str,
        checksum: str,
        source_type: str = "official",
        authority: Optional[str] = None,
        is_primary: bool = True,
    ) -> LegalSource:
        source = LegalSource(
            version_id=version_id,
            source_url=source_url,
            source_type=source_type,
            authority=authority,
            is_primary=is_primary,
            checksum=checksum,
        )
        self.db.add(source)
        await self.db.flush()
        return source

    # =========================================================================
    # Units
    # =========================================================================

    async def persist_units(self, version: LegalVersion, units: Sequence[ParsedUnit]) -> int:
        """
        Insert parsed units for a version, each in its own savepoint.

        Returns the number of units written. A unit that fails to insert
        is logged and skipped.
        """
        created = 0
        for unit in units:
            row = LegalUnit(
                version_id=version.id,
                instrument_id=version.instrument_id,
                cite_key=unit.cite_key,
                unit_type=unit.unit_type.value,
                article_number=unit.article_number,
                paragraph_number=unit.paragraph_number,
                letter=unit.letter,
                title=unit.title,
                content_text=unit.content_text,
                hash_sha256=unit.hash_sha256,
                keywords=unit.keywords,
                order_index=unit.order_index,
                is_key_unit=unit.is_key_unit,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(row)
                    await self.db.flush()
                created += 1
            except SQLAlchemyError as e:
                logger.warning(
                    "Skipping unit %s of version %s: %s",
                    unit.cite_key, version.id, e.__class__.__name__,
                )
        return created

    async def find_units_by_keyword(self, keywords: Sequence[str], limit: int = 20) -> List[LegalUnit]:
        """
        Units of current versions sharing at least one keyword, ranked by
        the number of shared keywords.
        """
        wanted = [k.lower() for k in keywords if k]
        if not wanted:
            return []

        # JSON text match; json.dumps mirrors how the column was serialized
        conditions = [
            cast(LegalUnit.keywords, Text).like(f"%{json.dumps(k)}%")
            for k in wanted
        ]
        result = await self.db.execute(
            select(LegalUnit)
            .where(LegalUnit.version_id.in_(current_version_ids()))
            .where(or_(*conditions))
        )
        candidates = result.scalars().all()

        wanted_set = set(wanted)
        scored = [
            (len(wanted_set.intersection(unit.keywords or [])), unit)
            for unit in candidates
        ]
        scored = [pair for pair in scored if pair[0] > 0]
        scored.sort(key=lambda pair: (-pair[0], pair[1].order_index))
        return [unit for _, unit in scored[:limit]]

    async def find_units_by_text(self, text: str, limit: int = 20) -> List[LegalUnit]:
        """Case-insensitive substring search over current versions."""
        if not text.strip():
            return []
        result = await self.db.execute(
            select(LegalUnit)
            .where(LegalUnit.version_id.in_(current_version_ids()))
            .where(LegalUnit.content_text.icontains(text.strip(), autoescape=True))
            .order_by(LegalUnit.order_index)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_units(
        self,
        keywords: Sequence[str],
        fallback_text: Optional[str] = None,
        limit: int = 20,
    ) -> Tuple[List[LegalUnit], str]:
        """
        Keyword search first; substring search only when no unit shares a
        keyword. Returns (units, search_type).
        """
        units = await self.find_units_by_keyword(keywords, limit=limit)
        if units:
            return units, "keyword"
        if fallback_text:
            return await self.find_units_by_text(fallback_text, limit=limit), "text"
        return [], "keyword"

    # =========================================================================
    # Ingestion lookups
    # =========================================================================

    async def latest_success_hash(self, source_url: str) -> Optional[str]:
        """Content hash recorded on the most recent successful ingestion of a URL."""
        result = await self.db.execute(
            select(IngestionItem.raw_content_hash)
            .where(IngestionItem.source_url == source_url)
            .where(IngestionItem.status == "success")
            .order_by(IngestionItem.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

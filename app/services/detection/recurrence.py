"""
Recurrence Tracker
Counts repeated violations per (institution, violation_type).

One row per pair. A record already listed in related_record_ids never
counts twice, so re-analysing the same record is harmless. Updates are a
compare-and-increment on occurrence_count; inserts rely on the unique
constraint and retry as an update when another writer got there first.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistError
from app.core.locks import KeyedLocks
from app.core.utc import utc_today
from app.models.models import RecurrencePattern
from app.services.detection.verdict import ALERT_SEVERITIES, Severity

logger = logging.getLogger(__name__)

AGGRAVATING_RECURRENCE_NOTE = "Récurrence aggravante - Art. 2 CC (abus de droit)"
UPSERT_RETRIES = 3

_pattern_locks = KeyedLocks()


@dataclass
class RecurrenceResult:
    institution: str
    violation_type: str
    count: int
    first_seen: date
    last_seen: date
    is_new: bool
    is_repeated: bool
    related_records: List[str] = field(default_factory=list)
    legal_implications: Optional[str] = None
    pattern_id: Optional[str] = None

    @classmethod
    def from_pattern(cls, pattern: RecurrencePattern, is_new: bool) -> "RecurrenceResult":
        return cls(
            institution=pattern.institution,
            violation_type=pattern.violation_type,
            count=pattern.occurrence_count,
            first_seen=pattern.first_occurrence,
            last_seen=pattern.last_occurrence,
            is_new=is_new,
            is_repeated=not is_new,
            related_records=list(pattern.related_record_ids or []),
            legal_implications=pattern.legal_implications,
            pattern_id=pattern.id,
        )

    def to_dict(self) -> dict:
        return {
            "pattern_type": self.violation_type,
            "institution": self.institution,
            "count": self.count,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "is_new": self.is_new,
            "is_repeated": self.is_repeated,
            "related_records": list(self.related_records),
        }


class RecurrenceTracker:
    """Recurrence counters bound to one AsyncSession."""

    def __init__(self, db: AsyncSession, today: Callable[[], date] = utc_today):
        self.db = db
        self.today = today

    async def get_pattern(self, institution: str, violation_type: str) -> Optional[RecurrencePattern]:
        result = await self.db.execute(
            select(RecurrencePattern)
            .where(RecurrencePattern.institution == institution)
            .where(RecurrencePattern.violation_type == violation_type)
        )
        return result.scalar_one_or_none()

    async def record_occurrence(
        self,
        institution: str,
        violation_type: str,
        record_id: str,
        severity: Union[Severity, str] = Severity.NONE,
    ) -> RecurrenceResult:
        severity = Severity.parse(severity)

        async with _pattern_locks.hold((institution, violation_type)):
            for attempt in range(1, UPSERT_RETRIES + 1):
                pattern = await self.get_pattern(institution, violation_type)
                if pattern is None:
                    created = await self._insert(institution, violation_type, record_id)
                    if created is not None:
                        logger.info("New recurrence pattern: %s / %s", institution, violation_type)
                        return RecurrenceResult.from_pattern(created, is_new=True)
                else:
                    updated = await self._increment(pattern, record_id, severity)
                    if updated is not None:
                        return updated
                logger.warning(
                    "Recurrence %s / %s changed concurrently (attempt %d/%d)",
                    institution, violation_type, attempt, UPSERT_RETRIES,
                )

        raise PersistError(f"Could not record recurrence for {institution} / {violation_type}")

    async def _insert(self, institution: str, violation_type: str, record_id: str) -> Optional[RecurrencePattern]:
        today = self.today()
        pattern = RecurrencePattern(
            institution=institution,
            violation_type=violation_type,
            occurrence_count=1,
            first_occurrence=today,
            last_occurrence=today,
            related_record_ids=[record_id],
        )
        try:
            async with self.db.begin_nested():
                self.db.add(pattern)
                await self.db.flush()
        except IntegrityError:
            return None
        return pattern

    async def _increment(
        self,
        pattern: RecurrencePattern,
        record_id: str,
        severity: Severity,
    ) -> Optional[RecurrenceResult]:
        related = list(pattern.related_record_ids or [])
        if record_id in related:
            return RecurrenceResult.from_pattern(pattern, is_new=False)

        expected = pattern.occurrence_count
        values = {
            "occurrence_count": expected + 1,
            "last_occurrence": max(pattern.last_occurrence, self.today()),
            "related_record_ids": related + [record_id],
        }
        if severity in ALERT_SEVERITIES:
            values["legal_implications"] = AGGRAVATING_RECURRENCE_NOTE

        result = await self.db.execute(
            update(RecurrencePattern)
            .where(RecurrencePattern.id == pattern.id)
            .where(RecurrencePattern.occurrence_count == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(pattern)
        if result.rowcount != 1:
            return None
        return RecurrenceResult.from_pattern(pattern, is_new=False)

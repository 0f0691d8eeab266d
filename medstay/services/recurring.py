"""
Recurring availability patterns.

A pattern is a generator, not a ground truth record: applying it writes one
override per matching weekday in its inclusive date range. When patterns
overlap, the most recently applied one wins for each date; the winning
pattern and time are recorded on the row (``source_pattern_id``,
``applied_at``).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..daterange import DateRange, sunday_weekday
from ..errors import BookingEngineError, NotFound, PersistenceError, ValidationError
from ..models import RecurringPattern
from .availability import AvailabilityStore, OverrideUpsert, validate_custom_price
from .pricing import get_property

logger = logging.getLogger(__name__)

PATTERN_FIELDS = ("name", "days_of_week", "start_date", "end_date", "is_available", "custom_price", "notes")


def normalize_days_of_week(days_of_week: Iterable[int]) -> List[int]:
    days = sorted(set(days_of_week or []))
    if not days:
        raise ValidationError("A recurring pattern needs at least one day of the week")
    invalid = [day for day in days if not isinstance(day, int) or not 0 <= day <= 6]
    if invalid:
        raise ValidationError(
            f"Days of week must be 0 (Sunday) to 6 (Saturday), got {invalid}",
            {"days_of_week": list(days_of_week)}
        )
    return days


def validate_pattern(pattern) -> None:
    if not pattern.name or not pattern.name.strip():
        raise ValidationError("Pattern name is required")
    normalize_days_of_week(pattern.days_of_week)
    if pattern.start_date is None or pattern.end_date is None:
        raise ValidationError("Pattern start_date and end_date are required")
    DateRange.inclusive(pattern.start_date, pattern.end_date)
    if pattern.is_available is None:
        raise ValidationError("Pattern is_available must be true or false", {"is_available": None})
    validate_custom_price(pattern.custom_price)


def materialize(pattern) -> List[OverrideUpsert]:
    """Overrides for every date in [start_date, end_date] whose weekday is in the pattern."""
    weekdays = set(pattern.days_of_week)
    return [
        OverrideUpsert(
            property_id=pattern.property_id,
            date=day,
            is_available=pattern.is_available,
            custom_price=pattern.custom_price,
            notes=pattern.notes,
            source_pattern_id=pattern.id,
        )
        for day in DateRange.inclusive(pattern.start_date, pattern.end_date).days()
        if sunday_weekday(day) in weekdays
    ]


class RecurringPatternService:
    def __init__(self, session: AsyncSession, store: Optional[AvailabilityStore] = None):
        self.session = session
        self.store = store or AvailabilityStore(session)

    async def list_patterns(self, property_id: str) -> List[RecurringPattern]:
        result = await self.session.execute(
            select(RecurringPattern)
            .where(RecurringPattern.property_id == property_id)
            .order_by(RecurringPattern.created_at)
        )
        return list(result.scalars().all())

    async def get_pattern(self, pattern_id: str, property_id: Optional[str] = None) -> RecurringPattern:
        pattern = await self.session.get(RecurringPattern, pattern_id)
        if pattern is None or (property_id and pattern.property_id != property_id):
            raise NotFound(f"Recurring pattern {pattern_id} not found", {"pattern_id": pattern_id})
        return pattern

    async def create_pattern(self, property_id: str, **fields: Any) -> RecurringPattern:
        """
        Persist a pattern and apply it to the calendar.

        The pattern row and its overrides commit together; when applying fails
        no pattern is stored.
        """
        await get_property(self.session, property_id)

        values = _pattern_values(fields)
        values.setdefault("is_available", True)
        pattern = RecurringPattern(property_id=property_id, **values)
        validate_pattern(pattern)
        pattern.days_of_week = normalize_days_of_week(pattern.days_of_week)

        message = f"Failed to create recurring pattern for property {property_id}"
        try:
            self.session.add(pattern)
            # Assigns the id the generated overrides point at
            await self.session.flush()
            await self.apply_pattern(pattern)
        except BookingEngineError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"{message}: {e}")
            raise PersistenceError(message) from e

        logger.info(f"Created recurring pattern '{pattern.name}' ({pattern.id}) for property {property_id}")
        return pattern

    async def update_pattern(
        self,
        pattern_id: str,
        changes: Dict[str, Any],
        property_id: Optional[str] = None,
        clear_stale: bool = False
    ) -> RecurringPattern:
        """
        Edit and re-apply a pattern.

        Dates covered before the edit but not after keep their overrides unless
        ``clear_stale`` is set, in which case the rows this pattern still owns
        there are removed.
        """
        pattern = await self.get_pattern(pattern_id, property_id)
        previous_days = {upsert.date for upsert in materialize(pattern)}

        values = _pattern_values(changes)
        candidate = _PatternDraft(pattern, values)
        validate_pattern(candidate)

        for field, value in values.items():
            setattr(pattern, field, value)
        pattern.days_of_week = normalize_days_of_week(pattern.days_of_week)

        # Commits the edit together with the re-applied overrides
        upserts = await self.apply_pattern(pattern)

        if clear_stale:
            stale = previous_days - {upsert.date for upsert in upserts}
            await self.store.delete_generated(pattern.id, stale)

        return pattern

    async def delete_pattern(
        self,
        pattern_id: str,
        property_id: Optional[str] = None,
        clear_generated: bool = False
    ) -> int:
        """Delete a pattern; generated overrides stay unless ``clear_generated``."""
        pattern = await self.get_pattern(pattern_id, property_id)

        await self.session.delete(pattern)
        await self._commit(f"Failed to delete recurring pattern {pattern_id}")
        logger.info(f"Deleted recurring pattern {pattern_id}")

        if clear_generated:
            return await self.store.delete_generated(pattern_id)
        return 0

    async def apply_pattern(self, pattern: RecurringPattern) -> List[OverrideUpsert]:
        upserts = materialize(pattern)
        pattern.last_applied_at = datetime.now(timezone.utc)
        await self.store.upsert_many(upserts)
        logger.info(f"Applied pattern {pattern.id}: {len(upserts)} dates")
        return upserts

    async def apply_all(self, property_id: str) -> int:
        """Re-apply every pattern of a property, oldest first."""
        total = 0
        for pattern in await self.list_patterns(property_id):
            total += len(await self.apply_pattern(pattern))
        return total

    async def _commit(self, message: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"{message}: {e}")
            raise PersistenceError(message) from e


class _PatternDraft:
    """Read-through view of a pattern with pending changes, for validation."""

    def __init__(self, pattern: RecurringPattern, changes: Dict[str, Any]):
        self._pattern = pattern
        self._changes = changes

    def __getattr__(self, name):
        if name in self._changes:
            return self._changes[name]
        return getattr(self._pattern, name)


def _pattern_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(fields) - set(PATTERN_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown pattern fields: {sorted(unknown)}")
    return dict(fields)

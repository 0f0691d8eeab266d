"""
Calendar availability overrides: one row per (property, date).

A missing row means "available at the base price". Writes are upserts keyed
on (property_id, date) and each call commits as a single transaction.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, delete, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..errors import PersistenceError, ValidationError
from ..models import CalendarAvailability
from ..redis_service import RedisService, redis_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverrideUpsert:
    """A full override row: availability, price and notes are all overwritten."""
    property_id: str
    date: date
    is_available: Optional[bool] = None
    custom_price: Optional[float] = None
    notes: Optional[str] = None
    source_pattern_id: Optional[str] = None


@dataclass(frozen=True)
class PriceOverride:
    """A price-only override: existing availability flags and notes are kept."""
    property_id: str
    date: date
    custom_price: float


def validate_custom_price(custom_price: Optional[float]) -> None:
    if custom_price is not None and custom_price <= 0:
        raise ValidationError(
            f"Custom price must be greater than 0, got {custom_price}",
            {"custom_price": custom_price}
        )


class AvailabilityStore:
    def __init__(self, session: AsyncSession, redis: Optional[RedisService] = None):
        self.session = session
        self.redis = redis or redis_service

    async def get_override(self, property_id: str, day: date) -> Optional[CalendarAvailability]:
        result = await self.session.execute(
            select(CalendarAvailability).where(
                and_(
                    CalendarAvailability.property_id == property_id,
                    CalendarAvailability.date == day
                )
            )
        )
        return result.scalar_one_or_none()

    async def list_overrides(self, property_id: str, first: date, last: date) -> List[CalendarAvailability]:
        """Overrides for ``first`` through ``last`` inclusive, ordered by date."""
        result = await self.session.execute(
            select(CalendarAvailability).where(
                and_(
                    CalendarAvailability.property_id == property_id,
                    CalendarAvailability.date >= first,
                    CalendarAvailability.date <= last
                )
            ).order_by(CalendarAvailability.date)
        )
        return list(result.scalars().all())

    async def overrides_by_date(self, property_id: str, first: date, last: date) -> Dict[date, CalendarAvailability]:
        return {row.date: row for row in await self.list_overrides(property_id, first, last)}

    async def _existing_rows(self, property_id: str, days: Iterable[date]) -> Dict[date, CalendarAvailability]:
        days = list(days)
        if not days:
            return {}
        result = await self.session.execute(
            select(CalendarAvailability).where(
                and_(
                    CalendarAvailability.property_id == property_id,
                    CalendarAvailability.date.in_(days)
                )
            )
        )
        return {row.date: row for row in result.scalars().all()}

    async def set_date(
        self,
        property_id: str,
        day: date,
        is_available: Optional[bool] = None,
        custom_price: Optional[float] = None,
        notes: Optional[str] = None
    ) -> CalendarAvailability:
        rows = await self.upsert_many([
            OverrideUpsert(property_id, day, is_available, custom_price, notes)
        ])
        return rows[0]

    async def set_bulk(
        self,
        property_id: str,
        days: Sequence[date],
        is_available: Optional[bool] = None,
        custom_price: Optional[float] = None,
        notes: Optional[str] = None
    ) -> List[CalendarAvailability]:
        return await self.upsert_many([
            OverrideUpsert(property_id, day, is_available, custom_price, notes)
            for day in sorted(set(days))
        ])

    async def upsert_many(self, upserts: Sequence[OverrideUpsert]) -> List[CalendarAvailability]:
        """Insert or overwrite full override rows; last writer wins per date."""
        for upsert in upserts:
            validate_custom_price(upsert.custom_price)

        applied_at = datetime.now(timezone.utc)
        rows: List[CalendarAvailability] = []
        try:
            for property_id, batch in _group_by_property(upserts).items():
                existing = await self._existing_rows(property_id, (u.date for u in batch))
                for upsert in batch:
                    row = existing.get(upsert.date)
                    if row is None:
                        row = CalendarAvailability(property_id=property_id, date=upsert.date)
                        self.session.add(row)
                        existing[upsert.date] = row
                    row.is_available = upsert.is_available
                    row.custom_price = upsert.custom_price
                    row.notes = upsert.notes
                    row.source_pattern_id = upsert.source_pattern_id
                    row.applied_at = applied_at if upsert.source_pattern_id else None
                    rows.append(row)

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error upserting calendar overrides: {e}")
            raise PersistenceError("Failed to save calendar overrides") from e

        await self._invalidate({u.property_id for u in upserts})
        logger.info(f"Upserted {len(rows)} calendar overrides")
        return rows

    async def upsert_prices(self, prices: Sequence[PriceOverride]) -> List[CalendarAvailability]:
        """Set custom prices only, keeping availability flags and notes of existing rows."""
        for price in prices:
            validate_custom_price(price.custom_price)

        rows: List[CalendarAvailability] = []
        try:
            for property_id, batch in _group_by_property(prices).items():
                existing = await self._existing_rows(property_id, (p.date for p in batch))
                for price in batch:
                    row = existing.get(price.date)
                    if row is None:
                        row = CalendarAvailability(property_id=property_id, date=price.date)
                        self.session.add(row)
                        existing[price.date] = row
                    row.custom_price = price.custom_price
                    rows.append(row)

            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error upserting custom prices: {e}")
            raise PersistenceError("Failed to save custom prices") from e

        await self._invalidate({p.property_id for p in prices})
        return rows

    async def delete_date(self, property_id: str, day: date) -> bool:
        """Remove the override so the date falls back to the defaults"""
        try:
            result = await self.session.execute(
                delete(CalendarAvailability).where(
                    and_(
                        CalendarAvailability.property_id == property_id,
                        CalendarAvailability.date == day
                    )
                )
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to delete override for {day.isoformat()}") from e

        await self._invalidate({property_id})
        return result.rowcount > 0

    async def delete_generated(self, pattern_id: str, days: Optional[Iterable[date]] = None) -> int:
        """Remove rows last written by a recurring pattern (optionally only some dates)."""
        conditions = [CalendarAvailability.source_pattern_id == pattern_id]
        if days is not None:
            days = list(days)
            if not days:
                return 0
            conditions.append(CalendarAvailability.date.in_(days))

        try:
            property_ids = (await self.session.execute(
                select(CalendarAvailability.property_id).where(and_(*conditions)).distinct()
            )).scalars().all()
            result = await self.session.execute(delete(CalendarAvailability).where(and_(*conditions)))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"Failed to clear overrides of pattern {pattern_id}") from e

        await self._invalidate(set(property_ids))
        logger.info(f"Cleared {result.rowcount} overrides generated by pattern {pattern_id}")
        return result.rowcount

    async def _invalidate(self, property_ids: Iterable[str]) -> None:
        for property_id in property_ids:
            await self.redis.invalidate_calendar_cache(property_id)


def _group_by_property(items) -> Dict[str, list]:
    grouped: Dict[str, list] = {}
    for item in items:
        grouped.setdefault(item.property_id, []).append(item)
    return grouped

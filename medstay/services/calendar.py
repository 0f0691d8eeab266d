"""
Calendar views merging booking occupancy with availability overrides.
Read-only; range views may be served from the Redis cache.
"""
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..daterange import DateRange
from ..models import ACTIVE_STATUSES, Booking, CalendarAvailability
from ..redis_service import RedisService, redis_service
from .availability import AvailabilityStore
from .pricing import get_property, resolve_night_price

logger = logging.getLogger(__name__)


@dataclass
class DayView:
    date: date
    is_booked: bool
    is_available: bool
    price: float
    has_custom_price: bool
    booking_id: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DayView":
        return cls(**{**data, "date": date.fromisoformat(data["date"])})


def compose_day(
    day: date,
    base_price: float,
    override: Optional[CalendarAvailability],
    booking: Optional[Booking]
) -> DayView:
    has_custom_price = bool(override and override.custom_price is not None and override.custom_price > 0)
    if booking is not None:
        is_available = False
    elif override is not None and override.is_available is not None:
        is_available = override.is_available
    else:
        is_available = True

    return DayView(
        date=day,
        is_booked=booking is not None,
        is_available=is_available,
        price=resolve_night_price(day, base_price, override).price,
        has_custom_price=has_custom_price,
        booking_id=booking.id if booking is not None else None,
        notes=override.notes if override is not None else None,
    )


class CalendarAggregator:
    def __init__(
        self,
        session: AsyncSession,
        store: Optional[AvailabilityStore] = None,
        redis: Optional[RedisService] = None
    ):
        self.session = session
        self.redis = redis or redis_service
        self.store = store or AvailabilityStore(session, self.redis)

    async def _active_bookings(self, property_id: str, span: DateRange) -> List[Booking]:
        result = await self.session.execute(
            select(Booking).where(
                and_(
                    Booking.property_id == property_id,
                    Booking.status.in_(ACTIVE_STATUSES),
                    Booking.check_in < span.end,
                    Booking.check_out > span.start
                )
            ).order_by(Booking.check_in)
        )
        return list(result.scalars().all())

    async def _compute(self, property_id: str, span: DateRange) -> List[DayView]:
        rental = await get_property(self.session, property_id)
        overrides = await self.store.overrides_by_date(property_id, span.start, span.last)
        bookings = await self._active_bookings(property_id, span)

        # A night is booked when check_in <= night < check_out
        occupancy: Dict[date, Booking] = {}
        for booking in bookings:
            for night in DateRange(booking.check_in, booking.check_out).days():
                if span.contains(night):
                    occupancy[night] = booking

        return [
            compose_day(day, rental.base_price, overrides.get(day), occupancy.get(day))
            for day in span.days()
        ]

    async def day_view(self, property_id: str, day: date) -> DayView:
        views = await self._compute(property_id, DateRange.inclusive(day, day))
        return views[0]

    async def range_view(self, property_id: str, start: date, end: date, use_cache: bool = True) -> List[DayView]:
        """Ordered day views for ``start`` through ``end`` inclusive."""
        span = DateRange.inclusive(start, end)
        cache_key = f"{span.start.isoformat()}..{span.last.isoformat()}"

        if use_cache and self.redis.connected:
            cached = await self.redis.get_cached_calendar(property_id, cache_key)
            if cached is not None:
                return [DayView.from_dict(item) for item in cached]

        views = await self._compute(property_id, span)

        if use_cache and self.redis.connected:
            await self.redis.cache_calendar(property_id, cache_key, [view.to_dict() for view in views])
        return views

    async def multi_property_view(
        self,
        property_ids: Sequence[str],
        start: date,
        end: date
    ) -> Dict[str, List[DayView]]:
        # Each property is independent; no cross-property invariant
        views: Dict[str, List[DayView]] = {}
        for property_id in dict.fromkeys(property_ids):
            views[property_id] = await self.range_view(property_id, start, end)
        return views

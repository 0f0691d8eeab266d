"""
Overlap detection between a candidate stay and a property's active bookings.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ACTIVE_STATUSES, Booking


class ConflictChecker:
    """Reads bookings; never raises a domain error, callers decide what a conflict means."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _overlap_query(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[str] = None
    ):
        # Half-open overlap: a turnover day (check_out == other check_in) is not a conflict
        conditions = [
            Booking.property_id == property_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.check_in < check_out,
            Booking.check_out > check_in,
        ]
        if exclude_booking_id:
            conditions.append(Booking.id != exclude_booking_id)

        return select(Booking).where(and_(*conditions)).order_by(Booking.check_in)

    async def find_conflicts(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[str] = None
    ) -> List[Booking]:
        result = await self.session.execute(
            self._overlap_query(property_id, check_in, check_out, exclude_booking_id)
        )
        return list(result.scalars().all())

    async def has_conflict(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[str] = None
    ) -> bool:
        query = self._overlap_query(property_id, check_in, check_out, exclude_booking_id).limit(1)
        result = await self.session.execute(query)
        return result.scalars().first() is not None

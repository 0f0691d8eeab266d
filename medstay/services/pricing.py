"""
Pricing Resolver
Resolves nightly prices from per-date overrides and the property base price.
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..daterange import DateRange
from ..errors import NotFound
from ..models import CalendarAvailability, Property
from .availability import AvailabilityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NightPrice:
    date: date
    price: float
    source: str  # "override" or "base"


def resolve_night_price(day: date, base_price: float, override: Optional[CalendarAvailability]) -> NightPrice:
    """Override custom price when set and positive, otherwise the base price."""
    if override is not None and override.custom_price is not None and override.custom_price > 0:
        return NightPrice(day, override.custom_price, "override")
    return NightPrice(day, base_price, "base")


async def get_property(session: AsyncSession, property_id: str, for_update: bool = False) -> Property:
    query = select(Property).where(Property.id == property_id)
    if for_update:
        # Row lock on PostgreSQL; ignored by SQLite
        query = query.with_for_update()
    result = await session.execute(query)
    rental = result.scalar_one_or_none()
    if rental is None:
        raise NotFound(f"Property {property_id} not found", {"property_id": property_id})
    return rental


class PricingResolver:
    """Sums resolved nightly prices. No proration, taxes or fees."""

    def __init__(self, session: AsyncSession, store: Optional[AvailabilityStore] = None):
        self.session = session
        self.store = store or AvailabilityStore(session)

    async def price_for_night(self, property_id: str, day: date) -> float:
        rental = await get_property(self.session, property_id)
        override = await self.store.get_override(property_id, day)
        return resolve_night_price(day, rental.base_price, override).price

    async def nightly_breakdown(self, property_id: str, check_in: date, check_out: date) -> List[NightPrice]:
        stay = DateRange(check_in, check_out)
        rental = await get_property(self.session, property_id)
        overrides: Dict[date, CalendarAvailability] = await self.store.overrides_by_date(
            property_id, stay.start, stay.last
        )

        return [
            resolve_night_price(day, rental.base_price, overrides.get(day))
            for day in stay.days()
        ]

    async def price_for_range(self, property_id: str, check_in: date, check_out: date) -> float:
        nights = await self.nightly_breakdown(property_id, check_in, check_out)
        total = sum(night.price for night in nights)
        logger.debug(f"Priced {len(nights)} nights for property {property_id}: {total}")
        return total

"""
Dynamic Pricing Generator
Suggests nightly prices from seasonal, weekend and demand factors.
"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..daterange import DateRange, sunday_weekday
from ..errors import ValidationError
from ..models import CalendarAvailability
from .availability import AvailabilityStore, PriceOverride
from .pricing import get_property

logger = logging.getLogger(__name__)

MIN_DEMAND_FACTOR = 0.5
MAX_DEMAND_FACTOR = 1.5
WEEKEND_FACTOR = 1.15

# Month -> multiplier; months not listed use 1.0
SEASONAL_FACTORS = {
    3: 1.1, 4: 1.1,                    # spring shoulder
    5: 1.2, 6: 1.2, 7: 1.2, 8: 1.2,    # summer
    9: 1.1, 10: 1.1,                   # fall shoulder
    12: 1.3,                           # winter holidays
}


def seasonal_factor(day: date) -> float:
    return SEASONAL_FACTORS.get(day.month, 1.0)


def weekend_factor(day: date) -> float:
    # Friday and Saturday nights
    return WEEKEND_FACTOR if sunday_weekday(day) in (5, 6) else 1.0


def validate_demand_factor(demand_factor: float) -> None:
    if not MIN_DEMAND_FACTOR <= demand_factor <= MAX_DEMAND_FACTOR:
        raise ValidationError(
            f"Demand factor must be between {MIN_DEMAND_FACTOR} and {MAX_DEMAND_FACTOR}, got {demand_factor}",
            {"demand_factor": demand_factor}
        )


def round_currency(amount: float) -> int:
    """Round half up to whole currency units."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def dynamic_price(
    base_price: float,
    day: date,
    demand_factor: float = 1.0,
    seasonal: Optional[float] = None
) -> int:
    season = seasonal if seasonal is not None else seasonal_factor(day)
    return round_currency(base_price * season * weekend_factor(day) * demand_factor)


class DynamicPricingGenerator:
    """Computes price overrides; writing them is a separate, explicit step."""

    def __init__(self, session: AsyncSession, store: Optional[AvailabilityStore] = None):
        self.session = session
        self.store = store or AvailabilityStore(session)

    async def generate(
        self,
        property_id: str,
        start_date: date,
        end_date: date,
        demand_factor: float = 1.0,
        seasonal: Optional[float] = None
    ) -> List[PriceOverride]:
        """Price overrides for ``start_date`` through ``end_date`` inclusive."""
        validate_demand_factor(demand_factor)
        if seasonal is not None and seasonal <= 0:
            raise ValidationError(f"Seasonal factor must be positive, got {seasonal}")

        days = DateRange.inclusive(start_date, end_date).days()
        rental = await get_property(self.session, property_id)

        return [
            PriceOverride(
                property_id=property_id,
                date=day,
                custom_price=dynamic_price(rental.base_price, day, demand_factor, seasonal)
            )
            for day in days
        ]

    async def apply(
        self,
        property_id: str,
        start_date: date,
        end_date: date,
        demand_factor: float = 1.0,
        seasonal: Optional[float] = None
    ) -> List[CalendarAvailability]:
        """Generate and upsert as one batch; safe to re-run."""
        prices = await self.generate(property_id, start_date, end_date, demand_factor, seasonal)
        rows = await self.store.upsert_prices(prices)
        logger.info(
            f"Applied dynamic pricing to {len(rows)} dates for property {property_id} "
            f"(demand {demand_factor})"
        )
        return rows

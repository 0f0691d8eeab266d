"""
Availability API: calendar views, price quotes and per-date overrides.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Dict, List
import logging

from ...database import get_session
from ...errors import BookingEngineError
from ...schemas import (
    BulkOverrideRequest, CalendarResponse, DayViewResponse, NightPriceResponse,
    OverrideRequest, OverrideResponse, QuoteResponse
)
from ...services.availability import AvailabilityStore
from ...services.calendar import CalendarAggregator, DayView
from ...services.pricing import PricingResolver, get_property
from ..deps import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Availability"])


def summarize(days: List[DayView]) -> Dict[str, int]:
    return {
        "total_days": len(days),
        "available": len([d for d in days if d.is_available]),
        "booked": len([d for d in days if d.is_booked]),
        "blocked": len([d for d in days if not d.is_available and not d.is_booked]),
        "custom_priced": len([d for d in days if d.has_custom_price]),
    }


def calendar_response(property_id: str, start: date, end: date, days: List[DayView]) -> CalendarResponse:
    return CalendarResponse(
        property_id=property_id,
        date_range=f"{start.isoformat()}..{end.isoformat()}",
        days=[DayViewResponse.model_validate(day) for day in days],
        summary=summarize(days)
    )


@router.get("/properties/{property_id}/availability", response_model=CalendarResponse)
async def get_property_calendar(
    property_id: str,
    start: date = Query(..., alias="from", description="First date (YYYY-MM-DD)"),
    end: date = Query(..., alias="to", description="Last date, inclusive (YYYY-MM-DD)"),
    session: AsyncSession = Depends(get_session)
):
    """
    Per-day calendar for one property.

    Each day merges booking occupancy with availability overrides; booked
    days are never available.
    """
    try:
        days = await CalendarAggregator(session).range_view(property_id, start, end)
        return calendar_response(property_id, start, end, days)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching calendar for property {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch calendar data"
        )


@router.get("/calendar", response_model=List[CalendarResponse])
async def get_multi_property_calendar(
    property_ids: str = Query(..., description="Comma separated property IDs"),
    start: date = Query(..., alias="from"),
    end: date = Query(..., alias="to"),
    session: AsyncSession = Depends(get_session)
):
    """Calendars for several properties over the same inclusive range."""
    ids = [pid.strip() for pid in property_ids.split(",") if pid.strip()]
    try:
        views = await CalendarAggregator(session).multi_property_view(ids, start, end)
        return [calendar_response(pid, start, end, days) for pid, days in views.items()]

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching calendars for {ids}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch calendar data"
        )


@router.get("/properties/{property_id}/quote", response_model=QuoteResponse)
async def get_quote(
    property_id: str,
    check_in: date,
    check_out: date,
    session: AsyncSession = Depends(get_session)
):
    """Nightly price breakdown and total for a prospective stay."""
    try:
        nights = await PricingResolver(session).nightly_breakdown(property_id, check_in, check_out)
        return QuoteResponse(
            property_id=property_id,
            check_in=check_in,
            check_out=check_out,
            nights=len(nights),
            nightly=[NightPriceResponse.model_validate(night) for night in nights],
            total_amount=sum(night.price for night in nights)
        )

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error quoting property {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute quote"
        )


@router.put("/properties/{property_id}/calendar/{day}", response_model=OverrideResponse)
async def set_calendar_date(
    property_id: str,
    day: date,
    override: OverrideRequest,
    session: AsyncSession = Depends(get_session)
):
    """Overwrite the availability, custom price and notes of one date."""
    try:
        await get_property(session, property_id)
        row = await AvailabilityStore(session).set_date(
            property_id, day, override.is_available, override.custom_price, override.notes
        )
        return OverrideResponse.model_validate(row)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error setting calendar override {property_id}/{day}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save calendar override"
        )


@router.post("/properties/{property_id}/calendar/bulk", response_model=List[OverrideResponse])
async def set_calendar_dates(
    property_id: str,
    override: BulkOverrideRequest,
    session: AsyncSession = Depends(get_session)
):
    """Apply the same override to many dates in one transaction."""
    try:
        await get_property(session, property_id)
        rows = await AvailabilityStore(session).set_bulk(
            property_id, override.dates, override.is_available, override.custom_price, override.notes
        )
        return [OverrideResponse.model_validate(row) for row in rows]

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error setting bulk calendar overrides for {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save calendar overrides"
        )


@router.delete("/properties/{property_id}/calendar/{day}")
async def delete_calendar_date(
    property_id: str,
    day: date,
    session: AsyncSession = Depends(get_session)
):
    """Remove an override so the date is available at the base price again."""
    try:
        deleted = await AvailabilityStore(session).delete_date(property_id, day)
        return {"property_id": property_id, "date": day.isoformat(), "deleted": deleted}

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error deleting calendar override {property_id}/{day}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete calendar override"
        )

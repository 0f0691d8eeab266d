"""
Bookings API: creation with idempotency support, updates and status changes.
"""
from fastapi import APIRouter, Depends, HTTPException, Header, Query, status
from datetime import date
from typing import Optional
import logging

from ...errors import BookingEngineError
from ...models import BookingStatus
from ...schemas import (
    AvailabilityCheckResponse, BookingCreate, BookingListResponse, BookingQuery,
    BookingResponse, BookingUpdate, SortField, StatusChange
)
from ...services.booking import BookingEngine
from ..deps import get_engine, http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Bookings"])


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_request: BookingCreate,
    guest_id: str = Header(..., alias="X-Guest-Id"),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    engine: BookingEngine = Depends(get_engine)
):
    """
    Create a pending booking for a property.

    If an Idempotency-Key header is provided, repeating the request returns
    the booking created by the first one instead of a conflict or a duplicate.

    Headers:
    - **X-Guest-Id**: Guest reference from the auth layer
    - **Idempotency-Key**: Optional key for request idempotency
    """
    try:
        booking = await engine.create_booking(booking_request, guest_id, idempotency_key)
        return BookingResponse.model_validate(booking)

    except BookingEngineError as e:
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating booking: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking"
        )


@router.get("/bookings", response_model=BookingListResponse)
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    property_id: Optional[str] = None,
    guest_id: Optional[str] = None,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    check_in_from: Optional[date] = None,
    check_in_to: Optional[date] = None,
    sort_by: SortField = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    engine: BookingEngine = Depends(get_engine)
):
    try:
        query = BookingQuery(
            page=page,
            limit=limit,
            property_id=property_id,
            guest_id=guest_id,
            status=booking_status,
            check_in_from=check_in_from,
            check_in_to=check_in_to,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        bookings, total = await engine.list_bookings(query)
        return BookingListResponse(
            bookings=[BookingResponse.model_validate(b) for b in bookings],
            total=total,
            page=page,
            limit=limit
        )

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error listing bookings: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list bookings"
        )


@router.get("/bookings/availability", response_model=AvailabilityCheckResponse)
async def check_availability(
    property_id: str,
    check_in: date,
    check_out: date,
    engine: BookingEngine = Depends(get_engine)
):
    """Whether a stay could be booked right now (no lock is taken)."""
    try:
        result = await engine.check_availability(property_id, check_in, check_out)
        return AvailabilityCheckResponse(**result)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error checking availability for property {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check availability"
        )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: str, engine: BookingEngine = Depends(get_engine)):
    try:
        return BookingResponse.model_validate(await engine.get_booking(booking_id))

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error getting booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get booking"
        )


@router.patch("/bookings/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    patch: BookingUpdate,
    engine: BookingEngine = Depends(get_engine)
):
    """
    Update dates, guest count or guest details.

    New dates are checked against other bookings and the total is recomputed.
    """
    try:
        booking = await engine.update_booking(booking_id, patch)
        return BookingResponse.model_validate(booking)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update booking"
        )


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: str, engine: BookingEngine = Depends(get_engine)):
    try:
        booking = await engine.cancel_booking(booking_id)
        return BookingResponse.model_validate(booking)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error cancelling booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to cancel booking"
        )


@router.post("/bookings/{booking_id}/status", response_model=BookingResponse)
async def change_booking_status(
    booking_id: str,
    change: StatusChange,
    engine: BookingEngine = Depends(get_engine)
):
    """Confirm, check in or check out a booking."""
    try:
        booking = await engine.transition(booking_id, change.to_status)
        return BookingResponse.model_validate(booking)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error changing status of booking {booking_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to change booking status"
        )

"""
Pydantic request/response models for the booking API.
Domain rules (date order, guest limits, positive prices) are enforced by the
services so they hold for library callers too.
"""

import datetime as dt
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import BookingStatus


# Bookings
class GuestDetails(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Guest full name")
    email: EmailStr
    phone: str = Field(..., min_length=10, max_length=15)
    purpose_of_visit: Optional[str] = Field(None, max_length=255)


class BookingCreate(BaseModel):
    property_id: str
    check_in: date
    check_out: date = Field(..., description="Exclusive: the morning the guest leaves")
    guest_count: int
    guest_details: GuestDetails
    special_requests: Optional[str] = Field(None, max_length=500)


class BookingUpdate(BaseModel):
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    guest_count: Optional[int] = None
    guest_details: Optional[GuestDetails] = None
    special_requests: Optional[str] = Field(None, max_length=500)


class StatusChange(BaseModel):
    to_status: BookingStatus


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    guest_id: str
    check_in: date
    check_out: date
    guest_count: int
    total_amount: float
    status: BookingStatus
    guest_name: str
    guest_email: str
    guest_phone: str
    purpose_of_visit: Optional[str] = None
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


SortField = Literal["created_at", "updated_at", "check_in", "check_out", "total_amount"]


class BookingQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    property_id: Optional[str] = None
    guest_id: Optional[str] = None
    status: Optional[BookingStatus] = None
    check_in_from: Optional[date] = None
    check_in_to: Optional[date] = None
    sort_by: SortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    total: int
    page: int
    limit: int


class AvailabilityCheckResponse(BaseModel):
    property_id: str
    check_in: date
    check_out: date
    available: bool
    reason: Optional[Literal["BOOKING_CONFLICT", "DATES_UNAVAILABLE"]] = None
    conflicting_bookings: List[str] = []
    blocked_dates: List[date] = []


# Calendar
class OverrideRequest(BaseModel):
    is_available: Optional[bool] = None
    custom_price: Optional[float] = None
    notes: Optional[str] = None


class BulkOverrideRequest(OverrideRequest):
    dates: List[date] = Field(..., min_length=1)


class OverrideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    property_id: str
    date: dt.date
    is_available: Optional[bool] = None
    custom_price: Optional[float] = None
    notes: Optional[str] = None
    source_pattern_id: Optional[str] = None
    applied_at: Optional[datetime] = None


class DayViewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    is_booked: bool
    is_available: bool
    price: float
    has_custom_price: bool
    booking_id: Optional[str] = None
    notes: Optional[str] = None


class CalendarResponse(BaseModel):
    property_id: str
    date_range: str
    days: List[DayViewResponse]
    summary: Dict[str, int]


class NightPriceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    price: float
    source: Literal["override", "base"]


class QuoteResponse(BaseModel):
    property_id: str
    check_in: date
    check_out: date
    nights: int
    nightly: List[NightPriceResponse]
    total_amount: float


# Recurring patterns
class PatternCreate(BaseModel):
    name: str = Field(..., description="e.g. Summer Weekends")
    days_of_week: List[int] = Field(..., description="0 = Sunday .. 6 = Saturday")
    start_date: date
    end_date: date = Field(..., description="Inclusive")
    is_available: bool = True
    custom_price: Optional[float] = None
    notes: Optional[str] = None


class PatternUpdate(BaseModel):
    name: Optional[str] = None
    days_of_week: Optional[List[int]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_available: Optional[bool] = None
    custom_price: Optional[float] = None
    notes: Optional[str] = None
    clear_stale: bool = Field(False, description="Remove overrides on dates the edited pattern no longer covers")


class PatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    name: str
    days_of_week: List[int]
    start_date: date
    end_date: date
    is_available: bool
    custom_price: Optional[float] = None
    notes: Optional[str] = None
    last_applied_at: Optional[datetime] = None


# Dynamic pricing
class DynamicPricingRequest(BaseModel):
    start_date: date
    end_date: date = Field(..., description="Inclusive")
    demand_factor: float = Field(1.0, description="0.5 (low demand) to 1.5 (high demand)")
    seasonal_factor: Optional[float] = Field(None, description="Overrides the month-based seasonal table")
    apply: bool = Field(True, description="Write the prices to the calendar; false only previews them")


class PriceSuggestion(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    custom_price: float


class DynamicPricingResponse(BaseModel):
    property_id: str
    applied: bool
    prices: List[PriceSuggestion]

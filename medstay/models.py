"""
SQLAlchemy models for properties, bookings and calendar availability.
"""

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Float, Boolean, Text, ForeignKey,
    Index, JSON, UniqueConstraint, CheckConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import uuid
import enum

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Enums
class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


# Statuses that still occupy their date range
ACTIVE_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN,
)


# Models
class Property(Base):
    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=True)
    base_price = Column(Float, nullable=False)
    max_guests = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    # Relationships
    bookings = relationship("Booking", back_populates="rental_property")

    __table_args__ = (
        CheckConstraint("base_price > 0", name="ck_properties_base_price_positive"),
        CheckConstraint("max_guests >= 1", name="ck_properties_max_guests_positive"),
    )


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False)
    guest_id = Column(String(100), nullable=False, index=True)

    # Stay
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)  # exclusive
    guest_count = Column(Integer, nullable=False)
    total_amount = Column(Float, nullable=False)
    status = Column(
        SQLEnum(BookingStatus, values_callable=lambda e: [s.value for s in e], name="booking_status"),
        default=BookingStatus.PENDING,
        nullable=False
    )

    # Guest contact details
    guest_name = Column(String(100), nullable=False)
    guest_email = Column(String(255), nullable=False)
    guest_phone = Column(String(30), nullable=False)
    purpose_of_visit = Column(String(255), nullable=True)
    special_requests = Column(Text, nullable=True)

    # Client supplied key for safe retries of create
    idempotency_key = Column(String(255), nullable=True, unique=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    # Relationships
    rental_property = relationship("Property", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("check_out > check_in", name="ck_bookings_dates_ordered"),
        CheckConstraint("guest_count >= 1", name="ck_bookings_guest_count_positive"),
        Index("idx_bookings_property_status_dates", "property_id", "status", "check_in", "check_out"),
        Index("idx_bookings_created", "created_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class CalendarAvailability(Base):
    __tablename__ = "calendar_availability"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False)
    date = Column(Date, nullable=False)

    # Override values; NULL means "not overridden"
    is_available = Column(Boolean, nullable=True)
    custom_price = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    # Recurring pattern that last wrote this row
    source_pattern_id = Column(String(36), nullable=True, index=True)
    applied_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("property_id", "date", name="uq_calendar_property_date"),
        CheckConstraint("custom_price IS NULL OR custom_price > 0", name="ck_calendar_custom_price_positive"),
    )


class RecurringPattern(Base):
    __tablename__ = "recurring_patterns"

    id = Column(String(36), primary_key=True, default=_uuid)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    days_of_week = Column(JSON, nullable=False)  # 0 = Sunday .. 6 = Saturday
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # inclusive

    is_available = Column(Boolean, nullable=False, default=True)
    custom_price = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    last_applied_at = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_patterns_dates_ordered"),
        CheckConstraint("custom_price IS NULL OR custom_price > 0", name="ck_patterns_custom_price_positive"),
    )

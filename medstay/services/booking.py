"""
Booking Engine
Creates, updates and transitions bookings while keeping every property free
of overlapping active stays.

The conflict check and the write that follows it run under the per-property
lock, inside one transaction that also locks the property row. Nothing is
written when a check fails.
"""
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..config import Settings, settings as default_settings
from ..daterange import DateRange
from ..errors import (
    AlreadyFinalized, BookingConflict, BookingEngineError, DatesUnavailable,
    NotFound, PersistenceError, ValidationError
)
from ..models import Booking, BookingStatus, Property
from ..schemas import BookingCreate, BookingQuery, BookingUpdate
from .availability import AvailabilityStore
from .conflicts import ConflictChecker
from .events import (
    BOOKING_CANCELLED, BOOKING_CONFIRMED, BOOKING_CREATED, BOOKING_STATUS_CHANGED,
    BookingEventPublisher, booking_events
)
from .locks import PropertyLockManager, property_locks
from .pricing import PricingResolver, get_property
from .state_machine import TERMINAL_STATUSES, apply_transition

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "created_at": Booking.created_at,
    "updated_at": Booking.updated_at,
    "check_in": Booking.check_in,
    "check_out": Booking.check_out,
    "total_amount": Booking.total_amount,
}


class BookingEngine:
    def __init__(
        self,
        session: AsyncSession,
        locks: Optional[PropertyLockManager] = None,
        events: Optional[BookingEventPublisher] = None,
        config: Optional[Settings] = None,
        today: Optional[Callable[[], date]] = None
    ):
        self.session = session
        self.locks = locks or property_locks
        self.events = events or booking_events
        self.config = config or default_settings
        self.today = today or date.today

        self.store = AvailabilityStore(session)
        self.conflicts = ConflictChecker(session)
        self.pricing = PricingResolver(session, self.store)

    # Validation
    def _validate_stay(self, check_in: date, check_out: date, check_past: bool = True) -> DateRange:
        stay = DateRange(check_in, check_out)
        today = self.today()
        if check_past and stay.start < today:
            raise ValidationError(
                "Check-in date must be today or in the future",
                {"check_in": stay.start.isoformat(), "today": today.isoformat()}
            )
        if stay.nights > self.config.max_stay_nights:
            raise ValidationError(
                f"Stay of {stay.nights} nights exceeds the maximum of {self.config.max_stay_nights}",
                {"nights": stay.nights, "max_stay_nights": self.config.max_stay_nights}
            )
        return stay

    @staticmethod
    def _validate_guest_count(guest_count: int, rental: Optional[Property] = None) -> None:
        if guest_count < 1:
            raise ValidationError("At least one guest is required", {"guest_count": guest_count})
        if rental is not None and guest_count > rental.max_guests:
            raise ValidationError(
                f"Property allows at most {rental.max_guests} guests, got {guest_count}",
                {"guest_count": guest_count, "max_guests": rental.max_guests}
            )

    async def _ensure_bookable(self, property_id: str, stay: DateRange, exclude_booking_id: Optional[str] = None) -> None:
        conflicts = await self.conflicts.find_conflicts(property_id, stay.start, stay.end, exclude_booking_id)
        if conflicts:
            raise BookingConflict(
                f"Property {property_id} is already booked for {stay}",
                {"conflicting_bookings": [booking.id for booking in conflicts]}
            )

        if self.config.enforce_blocked_dates:
            blocked = await self.blocked_dates(property_id, stay)
            if blocked:
                raise DatesUnavailable(
                    f"Property {property_id} is not available on {len(blocked)} of the requested nights",
                    {"blocked_dates": [day.isoformat() for day in blocked]}
                )

    async def blocked_dates(self, property_id: str, stay: DateRange) -> List[date]:
        overrides = await self.store.list_overrides(property_id, stay.start, stay.last)
        return [row.date for row in overrides if row.is_available is False]

    async def check_availability(self, property_id: str, check_in: date, check_out: date) -> Dict[str, Any]:
        """Read-only preview of what create_booking would decide for these dates."""
        stay = self._validate_stay(check_in, check_out)
        await get_property(self.session, property_id)

        conflicts = await self.conflicts.find_conflicts(property_id, stay.start, stay.end)
        blocked = await self.blocked_dates(property_id, stay)

        reason = None
        if conflicts:
            reason = BookingConflict.code
        elif blocked and self.config.enforce_blocked_dates:
            reason = DatesUnavailable.code

        return {
            "property_id": property_id,
            "check_in": stay.start,
            "check_out": stay.end,
            "available": reason is None,
            "reason": reason,
            "conflicting_bookings": [booking.id for booking in conflicts],
            "blocked_dates": blocked,
        }

    # Reads
    async def find_by_idempotency_key(self, idempotency_key: str) -> Optional[Booking]:
        result = await self.session.execute(
            select(Booking)
            .where(Booking.idempotency_key == idempotency_key)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_booking(self, booking_id: str, refresh: bool = False) -> Booking:
        query = select(Booking).where(Booking.id == booking_id)
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await self.session.execute(query)
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", {"booking_id": booking_id})
        return booking

    async def list_bookings(self, query: Optional[BookingQuery] = None) -> Tuple[List[Booking], int]:
        query = query or BookingQuery()

        conditions = []
        if query.property_id:
            conditions.append(Booking.property_id == query.property_id)
        if query.guest_id:
            conditions.append(Booking.guest_id == query.guest_id)
        if query.status:
            conditions.append(Booking.status == query.status)
        if query.check_in_from:
            conditions.append(Booking.check_in >= query.check_in_from)
        if query.check_in_to:
            conditions.append(Booking.check_in <= query.check_in_to)

        count_query = select(func.count()).select_from(Booking)
        list_query = select(Booking)
        if conditions:
            count_query = count_query.where(and_(*conditions))
            list_query = list_query.where(and_(*conditions))

        column = SORT_COLUMNS[query.sort_by]
        order = column.asc() if query.sort_order == "asc" else column.desc()
        list_query = (
            list_query
            .order_by(order, Booking.id)
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )

        total = (await self.session.execute(count_query)).scalar_one()
        bookings = (await self.session.execute(list_query)).scalars().all()
        return list(bookings), total

    # Writes
    async def create_booking(
        self,
        data: BookingCreate,
        guest_id: str,
        idempotency_key: Optional[str] = None
    ) -> Booking:
        """
        Create a pending booking.

        Raises ValidationError, NotFound, BookingConflict (DatesUnavailable when
        blocked dates are enforced), LockUnavailable or PersistenceError. A
        repeated ``idempotency_key`` returns the booking it first created.
        """
        if not guest_id:
            raise ValidationError("guest_id is required")
        stay = self._validate_stay(data.check_in, data.check_out)
        self._validate_guest_count(data.guest_count)

        if idempotency_key:
            existing = await self.find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(f"♻️ Idempotent replay of booking {existing.id}")
                return existing

        async with self.locks.hold(data.property_id):
            try:
                if idempotency_key:
                    existing = await self.find_by_idempotency_key(idempotency_key)
                    if existing is not None:
                        return existing

                rental = await get_property(self.session, data.property_id, for_update=True)
                self._validate_guest_count(data.guest_count, rental)
                await self._ensure_bookable(data.property_id, stay)

                total_amount = await self.pricing.price_for_range(data.property_id, stay.start, stay.end)

                booking = Booking(
                    property_id=data.property_id,
                    guest_id=guest_id,
                    check_in=stay.start,
                    check_out=stay.end,
                    guest_count=data.guest_count,
                    total_amount=total_amount,
                    status=BookingStatus.PENDING,
                    guest_name=data.guest_details.name,
                    guest_email=data.guest_details.email,
                    guest_phone=data.guest_details.phone,
                    purpose_of_visit=data.guest_details.purpose_of_visit,
                    special_requests=data.special_requests,
                    idempotency_key=idempotency_key,
                )
                self.session.add(booking)
                await self.session.commit()

            except BookingEngineError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(f"❌ Failed to create booking for property {data.property_id}: {e}")
                raise PersistenceError("Failed to create booking") from e

        logger.info(
            f"✅ Created booking {booking.id} for property {booking.property_id} "
            f"({stay}, {stay.nights} nights, total {booking.total_amount})"
        )
        await self.store.redis.invalidate_calendar_cache(booking.property_id)
        self.events.publish(BOOKING_CREATED, booking)
        return booking

    async def update_booking(self, booking_id: str, patch: BookingUpdate) -> Booking:
        """
        Change dates, guest count or contact details.

        New dates are re-checked against other active bookings and re-priced.
        Finalized bookings cannot change; a checked-in stay keeps its dates and
        guest count. Nothing is written when any check fails.
        """
        changes = patch.model_dump(exclude_unset=True)
        booking = await self.get_booking(booking_id)

        async with self.locks.hold(booking.property_id):
            try:
                booking = await self.get_booking(booking_id, refresh=True)
                status = BookingStatus(booking.status)
                if status in TERMINAL_STATUSES:
                    raise AlreadyFinalized(
                        f"Booking {booking_id} is already {status.value}",
                        {"status": status.value}
                    )

                check_in = changes.get("check_in") or booking.check_in
                check_out = changes.get("check_out") or booking.check_out
                dates_changed = (check_in, check_out) != (booking.check_in, booking.check_out)
                guest_count = changes.get("guest_count")
                guests_changed = guest_count is not None and guest_count != booking.guest_count

                if status == BookingStatus.CHECKED_IN and (dates_changed or guests_changed):
                    raise ValidationError(
                        "Dates and guest count cannot change after check-in",
                        {"status": status.value}
                    )

                values: Dict[str, Any] = {}
                if guests_changed:
                    rental = await get_property(self.session, booking.property_id)
                    self._validate_guest_count(guest_count, rental)
                    values["guest_count"] = guest_count

                if dates_changed:
                    # An unchanged check-in may already be in the past; only a moved one is checked
                    stay = self._validate_stay(check_in, check_out, check_past=check_in != booking.check_in)
                    await get_property(self.session, booking.property_id, for_update=True)
                    await self._ensure_bookable(booking.property_id, stay, exclude_booking_id=booking.id)
                    values["check_in"] = stay.start
                    values["check_out"] = stay.end
                    values["total_amount"] = await self.pricing.price_for_range(
                        booking.property_id, stay.start, stay.end
                    )

                if changes.get("guest_details"):
                    details = patch.guest_details
                    values.update(
                        guest_name=details.name,
                        guest_email=details.email,
                        guest_phone=details.phone,
                        purpose_of_visit=details.purpose_of_visit,
                    )
                if "special_requests" in changes:
                    values["special_requests"] = patch.special_requests

                for field, value in values.items():
                    setattr(booking, field, value)
                await self.session.commit()

            except BookingEngineError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(f"❌ Failed to update booking {booking_id}: {e}")
                raise PersistenceError(f"Failed to update booking {booking_id}") from e

        logger.info(f"Updated booking {booking_id}: {sorted(values)}")
        if dates_changed:
            await self.store.redis.invalidate_calendar_cache(booking.property_id)
        return booking

    async def transition(self, booking_id: str, to_status: BookingStatus) -> Booking:
        """Move a booking through the state machine and emit its lifecycle events."""
        booking = await self.get_booking(booking_id)

        async with self.locks.hold(booking.property_id):
            try:
                booking = await self.get_booking(booking_id, refresh=True)
                from_status = apply_transition(booking, to_status)
                await self.session.commit()
            except BookingEngineError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(f"❌ Failed to move booking {booking_id} to {to_status}: {e}")
                raise PersistenceError(f"Failed to update status of booking {booking_id}") from e

        to_status = BookingStatus(booking.status)
        logger.info(f"🔄 Booking {booking_id}: {from_status.value} -> {to_status.value}")
        await self.store.redis.invalidate_calendar_cache(booking.property_id)

        self.events.publish(
            BOOKING_STATUS_CHANGED, booking,
            from_status=from_status.value, to_status=to_status.value
        )
        if to_status == BookingStatus.CONFIRMED:
            self.events.publish(BOOKING_CONFIRMED, booking)
        elif to_status == BookingStatus.CANCELLED:
            self.events.publish(BOOKING_CANCELLED, booking)
        return booking

    async def cancel_booking(self, booking_id: str) -> Booking:
        return await self.transition(booking_id, BookingStatus.CANCELLED)

    async def hard_delete(self, booking_id: str) -> None:
        """Administrative removal that bypasses the state machine."""
        booking = await self.get_booking(booking_id)
        property_id = booking.property_id

        try:
            await self.session.delete(booking)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"❌ Failed to delete booking {booking_id}: {e}")
            raise PersistenceError(f"Failed to delete booking {booking_id}") from e

        logger.warning(f"🗑️ Hard deleted booking {booking_id} of property {property_id}")
        await self.store.redis.invalidate_calendar_cache(property_id)

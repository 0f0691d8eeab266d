"""
Booking engine tests: creation, conflicts, updates, cancellation and events.
"""
from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from medstay.errors import (
    AlreadyFinalized, BookingConflict, DatesUnavailable, InvalidTransition,
    NotFound, TooLateToCancel, ValidationError
)
from medstay.models import BookingStatus
from medstay.schemas import BookingQuery, BookingUpdate, GuestDetails
from medstay.services.availability import AvailabilityStore
from medstay.services.events import (
    BOOKING_CANCELLED, BOOKING_CONFIRMED, BOOKING_CREATED, BOOKING_STATUS_CHANGED
)

GUEST = "guest-123"


class TestGuestDetails:

    @pytest.mark.parametrize("email", [
        "dana@host..com",
        "dana..x@host.com",
        "dana@-host.com",
        "dana.rivera.example.com",
        "dana@",
    ])
    def test_malformed_email_rejected(self, email):
        with pytest.raises(PydanticValidationError):
            GuestDetails(name="Dana Rivera", email=email, phone="+15551234567")

    def test_valid_email_accepted(self):
        details = GuestDetails(name="Dana Rivera", email="dana.rivera@example.com", phone="+15551234567")
        assert details.email == "dana.rivera@example.com"


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_create_booking_prices_nights_and_starts_pending(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        assert booking.total_amount == 400
        assert booking.status == BookingStatus.PENDING
        assert booking.guest_id == GUEST
        assert booking.guest_email == "dana.rivera@example.com"

    @pytest.mark.asyncio
    async def test_overlapping_booking_is_rejected_and_original_untouched(
        self, booking_engine, property_id, make_request, session_factory, make_engine_for
    ):
        first = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        with pytest.raises(BookingConflict) as exc_info:
            await booking_engine.create_booking(
                make_request(property_id, date(2025, 8, 3), date(2025, 8, 6)), "guest-456"
            )
        assert exc_info.value.details["conflicting_bookings"] == [first.id]

        async with session_factory() as db:
            stored = await make_engine_for(db).get_booking(first.id)
            bookings, total = await make_engine_for(db).list_bookings(BookingQuery(property_id=property_id))
        assert stored.status == BookingStatus.PENDING
        assert stored.total_amount == 400
        assert (stored.check_in, stored.check_out) == (date(2025, 8, 1), date(2025, 8, 5))
        assert total == 1

    @pytest.mark.asyncio
    async def test_back_to_back_stays_share_turnover_day(self, booking_engine, property_id, make_request):
        await booking_engine.create_booking(make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST)
        second = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 5), date(2025, 8, 8)), GUEST
        )

        assert second.status == BookingStatus.PENDING
        assert second.total_amount == 300

    @pytest.mark.asyncio
    async def test_cancelled_booking_frees_its_dates(self, booking_engine, property_id, make_request):
        first = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        await booking_engine.cancel_booking(first.id)

        second = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), "guest-456"
        )
        assert second.id != first.id
        assert second.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("check_in, check_out", [
        (date(2025, 8, 5), date(2025, 8, 5)),
        (date(2025, 8, 5), date(2025, 8, 1)),
    ])
    async def test_invalid_date_order(self, booking_engine, property_id, make_request, check_in, check_out):
        request = make_request(property_id, check_in, check_out)
        with pytest.raises(ValidationError):
            await booking_engine.create_booking(request, GUEST)

    @pytest.mark.asyncio
    async def test_stay_longer_than_maximum(self, booking_engine, property_id, make_request, config):
        config.max_stay_nights = 30
        with pytest.raises(ValidationError):
            await booking_engine.create_booking(
                make_request(property_id, date(2025, 8, 1), date(2025, 9, 1)), GUEST
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("guest_count", [0, 5])
    async def test_guest_count_out_of_bounds(self, booking_engine, property_id, make_request, guest_count):
        with pytest.raises(ValidationError):
            await booking_engine.create_booking(
                make_request(property_id, date(2025, 8, 1), date(2025, 8, 3), guest_count=guest_count), GUEST
            )

    @pytest.mark.asyncio
    async def test_check_in_before_today_is_rejected(self, booking_engine, property_id, make_request):
        # Engine "today" is 2025-01-01
        with pytest.raises(ValidationError) as exc_info:
            await booking_engine.create_booking(
                make_request(property_id, date(2024, 12, 31), date(2025, 1, 3)), GUEST
            )
        assert exc_info.value.details["check_in"] == "2024-12-31"

        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 1, 1), date(2025, 1, 3)), GUEST
        )
        assert booking.check_in == date(2025, 1, 1)

    @pytest.mark.asyncio
    async def test_past_dates_use_injected_today(self, session, make_engine_for, property_id, make_request):
        engine = make_engine_for(session, today=lambda: date(2025, 8, 10))

        with pytest.raises(ValidationError):
            await engine.create_booking(make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST)
        with pytest.raises(ValidationError):
            await engine.check_availability(property_id, date(2025, 8, 1), date(2025, 8, 5))

    @pytest.mark.asyncio
    async def test_unknown_property(self, booking_engine, make_request):
        with pytest.raises(NotFound):
            await booking_engine.create_booking(
                make_request("missing-property", date(2025, 8, 1), date(2025, 8, 3)), GUEST
            )

    @pytest.mark.asyncio
    async def test_idempotency_key_replays_first_booking(self, booking_engine, property_id, make_request):
        request = make_request(property_id, date(2025, 8, 1), date(2025, 8, 5))

        first = await booking_engine.create_booking(request, GUEST, idempotency_key="retry-1")
        second = await booking_engine.create_booking(request, GUEST, idempotency_key="retry-1")

        assert second.id == first.id
        _, total = await booking_engine.list_bookings(BookingQuery(property_id=property_id))
        assert total == 1

    @pytest.mark.asyncio
    async def test_blocked_dates_ignored_unless_enforced(
        self, booking_engine, session, property_id, make_request, config
    ):
        await AvailabilityStore(session).set_date(property_id, date(2025, 8, 2), is_available=False)
        request = make_request(property_id, date(2025, 8, 1), date(2025, 8, 4))

        config.enforce_blocked_dates = True
        with pytest.raises(DatesUnavailable) as exc_info:
            await booking_engine.create_booking(request, GUEST)
        assert exc_info.value.details["blocked_dates"] == ["2025-08-02"]
        assert isinstance(exc_info.value, BookingConflict)

        config.enforce_blocked_dates = False
        booking = await booking_engine.create_booking(request, GUEST)
        assert booking.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_total_uses_custom_prices(self, booking_engine, session, property_id, make_request):
        await AvailabilityStore(session).set_date(property_id, date(2025, 8, 2), custom_price=150)

        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        assert booking.total_amount == 450


class TestUpdateBooking:

    @pytest.mark.asyncio
    async def test_date_change_reprices(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        updated = await booking_engine.update_booking(
            booking.id, BookingUpdate(check_in=date(2025, 8, 2), check_out=date(2025, 8, 8))
        )

        assert (updated.check_in, updated.check_out) == (date(2025, 8, 2), date(2025, 8, 8))
        assert updated.total_amount == 600

    @pytest.mark.asyncio
    async def test_extending_over_own_dates_is_not_a_conflict(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        updated = await booking_engine.update_booking(booking.id, BookingUpdate(check_out=date(2025, 8, 6)))
        assert updated.total_amount == 500

    @pytest.mark.asyncio
    async def test_conflicting_update_leaves_booking_unchanged(
        self, booking_engine, property_id, make_request, session_factory, make_engine_for
    ):
        first = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        second = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 10), date(2025, 8, 12)), GUEST
        )

        with pytest.raises(BookingConflict):
            await booking_engine.update_booking(second.id, BookingUpdate(check_in=date(2025, 8, 4)))

        async with session_factory() as db:
            stored = await make_engine_for(db).get_booking(second.id)
        assert (stored.check_in, stored.check_out) == (date(2025, 8, 10), date(2025, 8, 12))
        assert stored.total_amount == 200
        assert first.id != second.id

    @pytest.mark.asyncio
    async def test_moving_check_in_into_the_past_is_rejected(
        self, session, make_engine_for, property_id, make_request
    ):
        booking = await make_engine_for(session).create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        later = make_engine_for(session, today=lambda: date(2025, 8, 3))

        with pytest.raises(ValidationError):
            await later.update_booking(booking.id, BookingUpdate(check_in=date(2025, 8, 2)))

        # The stay already started; extending it keeps the original check-in
        updated = await later.update_booking(booking.id, BookingUpdate(check_out=date(2025, 8, 6)))
        assert (updated.check_in, updated.check_out) == (date(2025, 8, 1), date(2025, 8, 6))

    @pytest.mark.asyncio
    async def test_guest_count_revalidated(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        with pytest.raises(ValidationError):
            await booking_engine.update_booking(booking.id, BookingUpdate(guest_count=9))

        updated = await booking_engine.update_booking(booking.id, BookingUpdate(guest_count=3))
        assert updated.guest_count == 3
        assert updated.total_amount == 400

    @pytest.mark.asyncio
    async def test_contact_details_update(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        updated = await booking_engine.update_booking(booking.id, BookingUpdate(
            guest_details=GuestDetails(name="Sam Lee", email="sam@example.com", phone="+15559876543"),
            special_requests="Ground floor please"
        ))

        assert updated.guest_name == "Sam Lee"
        assert updated.guest_email == "sam@example.com"
        assert updated.purpose_of_visit is None
        assert updated.special_requests == "Ground floor please"

    @pytest.mark.asyncio
    async def test_finalized_booking_cannot_change(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        await booking_engine.cancel_booking(booking.id)

        with pytest.raises(AlreadyFinalized):
            await booking_engine.update_booking(booking.id, BookingUpdate(guest_count=1))

    @pytest.mark.asyncio
    async def test_checked_in_stay_keeps_dates(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        await booking_engine.transition(booking.id, BookingStatus.CONFIRMED)
        await booking_engine.transition(booking.id, BookingStatus.CHECKED_IN)

        with pytest.raises(ValidationError):
            await booking_engine.update_booking(booking.id, BookingUpdate(check_out=date(2025, 8, 7)))

        updated = await booking_engine.update_booking(booking.id, BookingUpdate(special_requests="Late checkout"))
        assert updated.special_requests == "Late checkout"


class TestStatusChanges:

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        for to_status in (BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT):
            booking = await booking_engine.transition(booking.id, to_status)
            assert booking.status == to_status

    @pytest.mark.asyncio
    async def test_cannot_skip_confirmation(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        with pytest.raises(InvalidTransition):
            await booking_engine.transition(booking.id, BookingStatus.CHECKED_IN)

        stored = await booking_engine.get_booking(booking.id, refresh=True)
        assert stored.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_cancel_twice(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        cancelled = await booking_engine.cancel_booking(booking.id)
        assert cancelled.status == BookingStatus.CANCELLED

        with pytest.raises(AlreadyFinalized):
            await booking_engine.cancel_booking(booking.id)

    @pytest.mark.asyncio
    async def test_cancel_after_check_in(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        await booking_engine.transition(booking.id, BookingStatus.CONFIRMED)
        await booking_engine.transition(booking.id, BookingStatus.CHECKED_IN)

        with pytest.raises(TooLateToCancel):
            await booking_engine.cancel_booking(booking.id)

    @pytest.mark.asyncio
    async def test_hard_delete(self, booking_engine, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )

        await booking_engine.hard_delete(booking.id)

        with pytest.raises(NotFound):
            await booking_engine.get_booking(booking.id)


class TestListBookings:

    @pytest.mark.asyncio
    async def test_filters_sorting_and_pagination(self, booking_engine, make_property, make_request):
        first_property = await make_property()
        second_property = await make_property(base_price=80)

        for month_day in (1, 10, 20):
            await booking_engine.create_booking(
                make_request(first_property, date(2025, 9, month_day), date(2025, 9, month_day + 2)), GUEST
            )
        await booking_engine.create_booking(
            make_request(second_property, date(2025, 9, 1), date(2025, 9, 3)), "guest-456"
        )

        bookings, total = await booking_engine.list_bookings(BookingQuery(
            property_id=first_property, sort_by="check_in", sort_order="asc", limit=2
        ))
        assert total == 3
        assert [b.check_in for b in bookings] == [date(2025, 9, 1), date(2025, 9, 10)]

        page_two, _ = await booking_engine.list_bookings(BookingQuery(
            property_id=first_property, sort_by="check_in", sort_order="asc", limit=2, page=2
        ))
        assert [b.check_in for b in page_two] == [date(2025, 9, 20)]

        by_guest, total = await booking_engine.list_bookings(BookingQuery(guest_id="guest-456"))
        assert total == 1
        assert by_guest[0].property_id == second_property

        window, total = await booking_engine.list_bookings(BookingQuery(
            check_in_from=date(2025, 9, 5), check_in_to=date(2025, 9, 15)
        ))
        assert total == 1
        assert window[0].check_in == date(2025, 9, 10)


class TestBookingEvents:

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, booking_engine, events, captured_events, property_id, make_request):
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        await booking_engine.transition(booking.id, BookingStatus.CONFIRMED)
        await booking_engine.cancel_booking(booking.id)
        await events.drain()

        names = [message["event"] for message in captured_events]
        assert names == [
            BOOKING_CREATED,
            BOOKING_STATUS_CHANGED, BOOKING_CONFIRMED,
            BOOKING_STATUS_CHANGED, BOOKING_CANCELLED,
        ]
        assert captured_events[0]["booking"]["booking_id"] == booking.id
        assert captured_events[1]["from_status"] == "pending"
        assert captured_events[1]["to_status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_fail_booking(self, booking_engine, events, property_id, make_request):
        async def broken(message):
            raise RuntimeError("notification service down")

        events.subscribe(broken)
        booking = await booking_engine.create_booking(
            make_request(property_id, date(2025, 8, 1), date(2025, 8, 5)), GUEST
        )
        await events.drain()

        stored = await booking_engine.get_booking(booking.id)
        assert stored.status == BookingStatus.PENDING

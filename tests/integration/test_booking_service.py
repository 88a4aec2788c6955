"""
Integration tests for booking creation and lifecycle.

Tests coverage:
- Each step of the creation pipeline and the error it raises
- Future check in the provider's timezone (frozen clock)
- Status transitions
- Read / list / delete permissions
- Outbox events and relay
"""

import uuid
import datetime as dt
from datetime import datetime, time, timezone

import pytest
from sqlalchemy import select

from pearlconnect.core.errors import Conflict, Forbidden, InvalidInput, NotConfigured, NotFound
from pearlconnect.modules.availability.service import AvailabilityService
from pearlconnect.modules.bookings import service as booking_service
from pearlconnect.modules.bookings.schemas import BookingCreate, BookingPatch
from pearlconnect.modules.bookings.service import BookingService
from pearlconnect.modules.events.outbox import EventOutbox, relay_once
from pearlconnect.platform.adapters.bus_noop import NoopEventBus

from tests.factories import upcoming, weekday_schedule

MONDAY = upcoming(0)


def request(seed, **overrides):
    data = {
        "service_id": seed.service.id,
        "customer_id": seed.customer.id,
        "provider_id": seed.provider.id,
        "date": MONDAY.isoformat(),
        "time_slot": "10:00 AM",
    }
    data.update(overrides)
    return BookingCreate(**data)


@pytest.fixture
async def scheduled(session, seed):
    await AvailabilityService(session).set_schedule(seed.as_provider, seed.provider.id, weekday_schedule(
        rule={"breaks": [{"start_time": "12:00 PM", "end_time": "1:00 PM", "reason": "Lunch"}]},
    ))
    return seed


@pytest.fixture
async def booking(session, scheduled):
    return await BookingService(session).create_booking(scheduled.as_customer, request(scheduled))


# ============================================================================
# Creation pipeline
# ============================================================================


class TestCreateBooking:
    """Happy path."""

    async def test_creates_pending_booking(self, session, scheduled):
        obj = await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, notes="Gate code 1234"))

        assert obj.status == "pending"
        assert obj.date == MONDAY
        assert obj.time_slot == time(10)
        assert obj.notes == "Gate code 1234"
        assert obj.scheduled_at == datetime(MONDAY.year, MONDAY.month, MONDAY.day, 7, tzinfo=timezone.utc)

    async def test_lenient_slot_spelling(self, session, scheduled):
        obj = await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, time_slot="02:00 pm"))

        assert obj.time_slot == time(14)

    async def test_admin_books_for_customer(self, session, scheduled):
        obj = await BookingService(session).create_booking(scheduled.as_admin, request(scheduled))

        assert obj.customer_id == scheduled.customer.id

    async def test_emits_event(self, session, booking):
        res = await session.execute(select(EventOutbox).where(EventOutbox.event_type == "BOOKING_CREATED"))
        ev = res.scalar_one()

        assert ev.subject_id == str(booking.id)
        assert ev.payload["time_slot"] == "10:00 AM"


class TestCreateBookingRejections:
    """The pipeline stops at the first failing step."""

    async def test_cannot_book_for_someone_else(self, session, scheduled):
        with pytest.raises(Forbidden, match="book as yourself"):
            await BookingService(session).create_booking(scheduled.as_other_customer, request(scheduled))

    async def test_missing_fields(self, session, scheduled):
        with pytest.raises(InvalidInput, match="service_id, provider_id, date, time_slot required"):
            await BookingService(session).create_booking(
                scheduled.as_customer, BookingCreate(customer_id=scheduled.customer.id),
            )

    async def test_unknown_service(self, session, scheduled):
        with pytest.raises(NotFound, match="Service not found"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, service_id=uuid.uuid4()))

    async def test_service_of_other_provider(self, session, scheduled):
        with pytest.raises(InvalidInput, match="not offered by this provider"):
            await BookingService(session).create_booking(
                scheduled.as_customer, request(scheduled, provider_id=scheduled.other_customer.id),
            )

    async def test_unknown_customer(self, session, scheduled):
        with pytest.raises(NotFound, match="Customer not found"):
            await BookingService(session).create_booking(scheduled.as_admin, request(scheduled, customer_id=uuid.uuid4()))

    async def test_bad_date_format(self, session, scheduled):
        with pytest.raises(InvalidInput, match="YYYY-MM-DD"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, date="07/01/2030"))

    @pytest.mark.parametrize("slot", ["10:00", "25:00 PM", "10:00AMish", " 10:00 AM"])
    async def test_bad_slot_format(self, session, scheduled, slot):
        with pytest.raises(InvalidInput, match="Invalid time slot format"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, time_slot=slot))

    async def test_past_date(self, session, scheduled):
        yesterday = dt.date.today() - dt.timedelta(days=1)

        with pytest.raises(InvalidInput, match="must be in the future"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, date=yesterday.isoformat()))

    async def test_provider_without_schedule(self, session, seed):
        with pytest.raises(NotConfigured):
            await BookingService(session).create_booking(seed.as_customer, request(seed))

    async def test_off_grid_slot(self, session, scheduled):
        with pytest.raises(InvalidInput, match="10:30 AM is not an available slot"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, time_slot="10:30 AM"))

    async def test_slot_during_break(self, session, scheduled):
        with pytest.raises(InvalidInput, match="not an available slot"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, time_slot="12:00 PM"))

    async def test_closed_weekday(self, session, scheduled):
        with pytest.raises(InvalidInput, match="not an available slot"):
            await BookingService(session).create_booking(
                scheduled.as_customer, request(scheduled, date=upcoming(1).isoformat()),
            )

    async def test_beyond_horizon(self, session, scheduled):
        far = upcoming(0, min_days=60)

        with pytest.raises(InvalidInput, match="at most 30 days"):
            await BookingService(session).create_booking(scheduled.as_customer, request(scheduled, date=far.isoformat()))

    async def test_slot_already_taken(self, session, booking, scheduled):
        with pytest.raises(Conflict, match="already booked"):
            await BookingService(session).create_booking(scheduled.as_other_customer, request(
                scheduled, customer_id=scheduled.other_customer.id,
            ))

    async def test_cancelled_slot_can_be_rebooked(self, session, booking, scheduled):
        svc = BookingService(session)
        await svc.patch_booking(scheduled.as_customer, booking.id, BookingPatch(status="cancelled"))

        again = await svc.create_booking(scheduled.as_other_customer, request(scheduled, customer_id=scheduled.other_customer.id))

        assert again.status == "pending"
        assert again.id != booking.id

    async def test_rebooked_slot_blocks_reviving_the_cancelled_one(self, session, booking, scheduled):
        svc = BookingService(session)
        await svc.patch_booking(scheduled.as_customer, booking.id, BookingPatch(status="cancelled"))
        await svc.create_booking(scheduled.as_other_customer, request(scheduled, customer_id=scheduled.other_customer.id))

        with pytest.raises(Conflict, match="from cancelled to confirmed"):
            await svc.patch_booking(scheduled.as_admin, booking.id, BookingPatch(status="confirmed"))


class TestFutureCheckUsesProviderClock:
    """Frozen at 10:30 UTC, which is 1:30 PM in Asia/Bahrain."""

    @pytest.fixture(autouse=True)
    def frozen(self, monkeypatch):
        monkeypatch.setattr(booking_service, "_now", lambda: datetime(2030, 1, 7, 10, 30, tzinfo=timezone.utc))

    async def test_earlier_slot_today_is_past(self, session, scheduled):
        with pytest.raises(InvalidInput, match="must be in the future"):
            await BookingService(session).create_booking(
                scheduled.as_customer, request(scheduled, date="2030-01-07", time_slot="1:00 PM"),
            )

    async def test_later_slot_today_is_bookable(self, session, scheduled):
        obj = await BookingService(session).create_booking(
            scheduled.as_customer, request(scheduled, date="2030-01-07", time_slot="2:00 PM"),
        )

        assert obj.scheduled_at == datetime(2030, 1, 7, 11, tzinfo=timezone.utc)


# ============================================================================
# Status transitions
# ============================================================================


class TestStatusTransitions:

    async def test_full_lifecycle(self, session, booking, scheduled):
        svc = BookingService(session)

        obj = await svc.patch_booking(scheduled.as_provider, booking.id, BookingPatch(status="confirmed"))
        assert obj.status == "confirmed"

        obj = await svc.patch_booking(scheduled.as_provider, booking.id, BookingPatch(status="completed"))
        assert obj.status == "completed"

        res = await session.execute(select(EventOutbox).where(EventOutbox.event_type == "BOOKING_STATUS_CHANGED").order_by(EventOutbox.created_at))
        assert [e.payload["to"] for e in res.scalars().all()] == ["confirmed", "completed"]

    @pytest.mark.parametrize("path", [
        ("completed",),
        ("cancelled", "pending"),
        ("confirmed", "completed", "cancelled"),
        ("cancelled", "confirmed"),
    ])
    async def test_illegal_transitions(self, session, booking, scheduled, path):
        svc = BookingService(session)
        *allowed, rejected = path
        for step in allowed:
            await svc.patch_booking(scheduled.as_admin, booking.id, BookingPatch(status=step))

        with pytest.raises(Conflict, match="Cannot change booking status"):
            await svc.patch_booking(scheduled.as_admin, booking.id, BookingPatch(status=rejected))

    async def test_unknown_status(self, session, booking, scheduled):
        with pytest.raises(InvalidInput, match="Invalid status"):
            await BookingService(session).patch_booking(scheduled.as_customer, booking.id, BookingPatch(status="done"))

    async def test_same_status_is_noop(self, session, booking, scheduled):
        obj = await BookingService(session).patch_booking(scheduled.as_customer, booking.id, BookingPatch(status="pending"))

        assert obj.status == "pending"

    async def test_notes_only(self, session, booking, scheduled):
        obj = await BookingService(session).patch_booking(scheduled.as_customer, booking.id, BookingPatch(notes="Bring ladder"))

        assert obj.notes == "Bring ladder"
        assert obj.status == "pending"

    async def test_stranger_cannot_update(self, session, booking, scheduled):
        with pytest.raises(Forbidden):
            await BookingService(session).patch_booking(scheduled.as_other_customer, booking.id, BookingPatch(status="cancelled"))


# ============================================================================
# Reads and deletes
# ============================================================================


class TestBookingAccess:

    async def test_parties_can_read(self, session, booking, scheduled):
        svc = BookingService(session)

        assert (await svc.get_booking(scheduled.as_customer, booking.id)).id == booking.id
        assert (await svc.get_booking(scheduled.as_provider, booking.id)).id == booking.id
        assert (await svc.get_booking(scheduled.as_admin, booking.id)).id == booking.id

    async def test_stranger_cannot_read(self, session, booking, scheduled):
        with pytest.raises(Forbidden):
            await BookingService(session).get_booking(scheduled.as_other_customer, booking.id)

    async def test_missing_booking(self, session, scheduled):
        with pytest.raises(NotFound, match="Booking not found"):
            await BookingService(session).get_booking(scheduled.as_admin, uuid.uuid4())

    async def test_list_scoped_to_party(self, session, booking, scheduled):
        svc = BookingService(session)
        await svc.create_booking(scheduled.as_other_customer, request(
            scheduled, customer_id=scheduled.other_customer.id, time_slot="11:00 AM",
        ))

        mine = await svc.list_bookings(scheduled.as_customer)
        theirs = await svc.list_bookings(scheduled.as_provider)
        everything = await svc.list_bookings(scheduled.as_admin)

        assert [b.id for b in mine] == [booking.id]
        assert len(theirs) == 2
        assert len(everything) == 2
        assert [b.time_slot for b in everything] == [time(10), time(11)]

    async def test_list_status_filter(self, session, booking, scheduled):
        svc = BookingService(session)

        assert len(await svc.list_bookings(scheduled.as_admin, status="pending")) == 1
        assert await svc.list_bookings(scheduled.as_admin, status="cancelled") == []
        with pytest.raises(InvalidInput):
            await svc.list_bookings(scheduled.as_admin, status="archived")

    async def test_delete(self, session, booking, scheduled):
        svc = BookingService(session)

        result = await svc.delete_booking(scheduled.as_customer, booking.id)

        assert result == {"message": "Booking deleted", "id": booking.id}
        with pytest.raises(NotFound):
            await svc.get_booking(scheduled.as_admin, booking.id)

    async def test_stranger_cannot_delete(self, session, booking, scheduled):
        with pytest.raises(Forbidden):
            await BookingService(session).delete_booking(scheduled.as_other_customer, booking.id)


# ============================================================================
# Outbox relay
# ============================================================================


class BrokenBus:
    async def publish(self, event):
        raise RuntimeError("stream unavailable")

    async def close(self):
        pass


class TestOutboxRelay:

    async def test_relay_publishes_and_marks_sent(self, session, booking):
        bus = NoopEventBus()

        claimed = await relay_once(session, bus)

        # SCHEDULE_SET from the fixture plus BOOKING_CREATED
        assert claimed == 2
        assert {e.event_type for e in bus.published} == {"SCHEDULE_SET", "BOOKING_CREATED"}
        created = bus.of_type("BOOKING_CREATED")[0]
        assert created.subject_type == "booking"
        assert created.subject_id == str(booking.id)
        assert created.as_message()["payload"]["date"] == MONDAY.isoformat()
        res = await session.execute(select(EventOutbox.status))
        assert set(res.scalars().all()) == {"sent"}
        assert await relay_once(session, bus) == 0

    async def test_failed_publish_is_retried_later(self, session, booking):
        await relay_once(session, BrokenBus())

        res = await session.execute(select(EventOutbox))
        rows = res.scalars().all()
        assert {r.status for r in rows} == {"pending"}
        assert {r.attempts for r in rows} == {1}
        assert rows[0].last_error == "stream unavailable"
        # backoff pushes the next attempt into the future
        assert await relay_once(session, NoopEventBus()) == 0

    async def test_gives_up_after_max_attempts(self, session, booking):
        await relay_once(session, BrokenBus(), max_attempts=1)

        res = await session.execute(select(EventOutbox.status))
        assert set(res.scalars().all()) == {"failed"}

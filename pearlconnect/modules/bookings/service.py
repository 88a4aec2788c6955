"""
Booking creation and lifecycle.

``create_booking`` runs the validation pipeline in a fixed order and stops at the
first failure. The pipeline has two parts. The first re-derives the provider's
slot grid for the requested date, because a slot list the client sends cannot be
trusted. The second is a fast existence check. The partial unique index on
``booking(provider_id, date, time_slot)`` decides the outcome when two requests
race for the same slot. The loser's ``IntegrityError`` is reported as a
``Conflict``, the same as the fast path.
"""
import uuid
import logging
from datetime import datetime, timezone
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pearlconnect.core.config import settings
from pearlconnect.core.errors import Conflict, Forbidden, InvalidInput, NotConfigured, NotFound
from pearlconnect.core.security import Principal
from pearlconnect.modules.availability.clock import format_clock, parse_clock
from pearlconnect.modules.availability.repository import ScheduleRepository
from pearlconnect.modules.availability.service import local_today, parse_day, zone_for
from pearlconnect.modules.availability.slots import find_slot, horizon_message
from pearlconnect.modules.bookings.models import Booking, BOOKING_STATUSES
from pearlconnect.modules.bookings.repository import BookingRepository
from pearlconnect.modules.bookings.schemas import BookingCreate, BookingPatch
from pearlconnect.modules.directory.repository import DirectoryRepository
from pearlconnect.modules.events.outbox import OutboxService

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("service_id", "customer_id", "provider_id", "date", "time_slot")

VALID_NEXT = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}

def _now() -> datetime:
    return datetime.now(timezone.utc)

def _is_party(principal: Principal, booking: Booking) -> bool:
    return principal.is_admin or principal.user_id in (booking.customer_id, booking.provider_id)

class BookingService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.bookings = BookingRepository(session)
        self.schedules = ScheduleRepository(session)
        self.directory = DirectoryRepository(session)

    async def create_booking(self, principal: Principal, payload: BookingCreate) -> Booking:
        # 1. authorization
        if not principal.is_admin and principal.user_id != payload.customer_id:
            raise Forbidden("You can only book as yourself")

        # 2. required fields
        missing = [f for f in REQUIRED_FIELDS if getattr(payload, f) in (None, "")]
        if missing:
            raise InvalidInput(f"{', '.join(missing)} required")

        # 3. referential integrity
        service = await self.directory.get_service(payload.service_id)
        if not service:
            raise NotFound("Service not found")
        if service.provider_id != payload.provider_id:
            raise InvalidInput("Service is not offered by this provider")
        if not await self.directory.get_user(payload.customer_id):
            raise NotFound("Customer not found")

        # 4-5. date + slot must parse and lie in the future, in the provider's zone
        day = parse_day(payload.date)
        try:
            slot_time = parse_clock(payload.time_slot)
        except ValueError:
            raise InvalidInput('Invalid time slot format. Use HH:MM AM/PM (e.g., "10:00 AM")')
        schedule = await self.schedules.get_for_provider(payload.provider_id)
        zone = zone_for(schedule.timezone if schedule else settings.DEFAULT_TIMEZONE)
        starts_at = datetime.combine(day, slot_time, tzinfo=zone)
        now = _now()
        if starts_at <= now:
            raise InvalidInput("Booking date must be in the future")

        # 6. configuration
        if not schedule:
            raise NotConfigured("Provider has not set up availability schedule")

        # 7. slot legality, re-derived from the schedule
        reason = horizon_message(schedule, day, local_today(schedule, now))
        if reason:
            raise InvalidInput(reason)
        slot = find_slot(schedule, day, slot_time)
        if slot is None or not slot.available:
            raise InvalidInput(f"{format_clock(slot_time)} is not an available slot on {day.isoformat()}")

        # 8. fast-path conflict check
        if await self.bookings.find_active(payload.provider_id, day, slot_time):
            raise Conflict("This time slot is already booked")

        # 9. persist; the partial unique index settles concurrent winners
        try:
            obj = await self.bookings.create(
                service_id=payload.service_id,
                customer_id=payload.customer_id,
                provider_id=payload.provider_id,
                date=day,
                time_slot=slot_time,
                scheduled_at=starts_at.astimezone(timezone.utc),
                status="pending",
                notes=payload.notes,
            )
            await OutboxService(self.session).enqueue("BOOKING_CREATED", "booking", obj.id, {
                "provider_id": str(obj.provider_id), "customer_id": str(obj.customer_id),
                "date": day.isoformat(), "time_slot": format_clock(slot_time),
            })
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.info(f"Lost race for provider {payload.provider_id} {day} {format_clock(slot_time)}: {e.orig}")
            raise Conflict("This time slot is already booked")
        logger.info(f"Booking {obj.id} created for provider {obj.provider_id} on {day} at {format_clock(slot_time)}")
        return obj

    async def _get_for(self, principal: Principal, booking_id: uuid.UUID, denied: str) -> Booking:
        obj = await self.bookings.get(booking_id)
        if not obj:
            raise NotFound("Booking not found")
        if not _is_party(principal, obj):
            raise Forbidden(denied)
        return obj

    async def get_booking(self, principal: Principal, booking_id: uuid.UUID) -> Booking:
        return await self._get_for(principal, booking_id, "You can only view your own bookings")

    async def list_bookings(self, principal: Principal, status: str | None = None):
        if status and status not in BOOKING_STATUSES:
            raise InvalidInput("Invalid status. Must be: pending, confirmed, completed, or cancelled")
        party = None if principal.is_admin else principal.user_id
        return await self.bookings.list(party_id=party, status=status)

    async def patch_booking(self, principal: Principal, booking_id: uuid.UUID, payload: BookingPatch) -> Booking:
        obj = await self._get_for(principal, booking_id, "Not authorized to update this booking")
        data = payload.model_dump(exclude_unset=True)
        prev = obj.status
        nxt = data.get("status")
        if "status" in data:
            if nxt not in BOOKING_STATUSES:
                raise InvalidInput("Invalid status. Must be: pending, confirmed, completed, or cancelled")
            if nxt != prev and nxt not in VALID_NEXT[prev]:
                raise Conflict(f"Cannot change booking status from {prev} to {nxt}")
            obj.status = nxt
        if "notes" in data:
            obj.notes = data["notes"]
        if nxt and nxt != prev:
            await OutboxService(self.session).enqueue("BOOKING_STATUS_CHANGED", "booking", obj.id, {"from": prev, "to": nxt})
        await self.session.commit()
        return obj

    async def delete_booking(self, principal: Principal, booking_id: uuid.UUID) -> dict:
        obj = await self._get_for(principal, booking_id, "You can only delete your own bookings")
        await self.bookings.delete(obj)
        await OutboxService(self.session).enqueue("BOOKING_DELETED", "booking", booking_id, {"provider_id": str(obj.provider_id)})
        await self.session.commit()
        return {"message": "Booking deleted", "id": booking_id}

import re
import uuid
import logging
import datetime as dt
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pearlconnect.core.base import utcnow
from pearlconnect.core.config import settings
from pearlconnect.core.errors import Conflict, Forbidden, InvalidInput, NotConfigured, NotFound
from pearlconnect.core.security import Principal
from pearlconnect.modules.availability.models import ProviderSchedule
from pearlconnect.modules.availability.repository import ScheduleRepository
from pearlconnect.modules.availability.schemas import ScheduleSet, SchedulePatch, DateExceptionIn
from pearlconnect.modules.availability.slots import plan_day, horizon_message
from pearlconnect.modules.bookings.repository import BookingRepository
from pearlconnect.modules.directory.models import User
from pearlconnect.modules.directory.repository import DirectoryRepository
from pearlconnect.modules.events.outbox import OutboxService

logger = logging.getLogger(__name__)

def _now() -> datetime:
    return datetime.now(timezone.utc)

ISO_DAY = re.compile(r"\d{4}-\d{2}-\d{2}")

def parse_day(value: str | dt.date | None) -> dt.date:
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str) or not ISO_DAY.fullmatch(value):
        raise InvalidInput("Invalid date format. Use YYYY-MM-DD.")
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        raise InvalidInput("Invalid date format. Use YYYY-MM-DD.")

def zone_for(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidInput(f"Unknown timezone: {name}")

def local_today(schedule: ProviderSchedule, now: datetime) -> dt.date:
    return now.astimezone(zone_for(schedule.timezone)).date()

def _check_unique_dates(exceptions: list[DateExceptionIn]):
    seen = set()
    for e in exceptions:
        if e.date in seen:
            raise Conflict(f"Duplicate exception for {e.date.isoformat()}")
        seen.add(e.date)

class AvailabilityService:
    def __init__(self, s: AsyncSession):
        self.s = s
        self.repo = ScheduleRepository(s)
        self.directory = DirectoryRepository(s)
        self.bookings = BookingRepository(s)

    # ---- access ----
    async def _provider(self, provider_id: uuid.UUID) -> User:
        provider = await self.directory.get_user(provider_id)
        if not provider:
            raise NotFound("Provider not found")
        return provider

    async def _readable(self, principal: Principal, provider_id: uuid.UUID) -> User:
        provider = await self._provider(provider_id)
        if principal.user_id != provider_id and principal.role not in ("admin", "customer"):
            raise Forbidden("Access denied - invalid user role")
        return provider

    async def _writable(self, principal: Principal, provider_id: uuid.UUID) -> User:
        provider = await self._provider(provider_id)
        if not principal.is_admin and principal.user_id != provider_id:
            raise Forbidden("Access denied - can only manage own availability")
        if provider.role != "provider":
            raise Forbidden("Only providers can have availability schedules")
        return provider

    async def _commit(self):
        try:
            await self.s.commit()
        except IntegrityError as e:
            await self.s.rollback()
            logger.warning(f"Schedule write rejected by storage constraint: {e.orig}")
            raise Conflict("Schedule was modified concurrently or has a duplicate key")

    # ---- schedule store ----
    async def get_schedule(self, principal: Principal, provider_id: uuid.UUID) -> ProviderSchedule:
        await self._readable(principal, provider_id)
        obj = await self.repo.get_for_provider(provider_id)
        if not obj:
            raise NotFound("No availability schedule found for this provider")
        return obj

    async def set_schedule(self, principal: Principal, provider_id: uuid.UUID, payload: ScheduleSet) -> ProviderSchedule:
        await self._writable(principal, provider_id)
        tz = payload.timezone or settings.DEFAULT_TIMEZONE
        zone_for(tz)
        _check_unique_dates(payload.exceptions)
        advance = payload.advance_booking_days if payload.advance_booking_days is not None else settings.DEFAULT_ADVANCE_BOOKING_DAYS

        obj = await self.repo.get_for_provider(provider_id)
        try:
            if obj is None:
                obj = await self.repo.create(provider_id, timezone=tz, advance_booking_days=advance,
                                             weekly_rules=payload.weekly_rules, exceptions=payload.exceptions)
                created = True
            else:
                obj.timezone = tz
                obj.advance_booking_days = advance
                obj.updated_at = utcnow()
                await self.repo.replace_rules(obj, payload.weekly_rules)
                await self.repo.replace_exceptions(obj, payload.exceptions)
                created = False
            await OutboxService(self.s).enqueue("SCHEDULE_SET", "schedule", obj.id, {
                "provider_id": str(provider_id), "created": created,
                "rules": len(payload.weekly_rules), "exceptions": len(payload.exceptions),
            })
        except IntegrityError as e:
            await self.s.rollback()
            logger.warning(f"Schedule upsert for provider {provider_id} hit a constraint: {e.orig}")
            raise Conflict("Schedule was modified concurrently or has a duplicate key")
        await self._commit()
        logger.info(f"Schedule {'created' if created else 'replaced'} for provider {provider_id}")
        return obj

    async def patch_schedule(self, principal: Principal, provider_id: uuid.UUID, payload: SchedulePatch) -> ProviderSchedule:
        await self._writable(principal, provider_id)
        obj = await self.repo.get_for_provider(provider_id)
        if not obj:
            raise NotFound("Availability schedule not found. Create it first with POST.")
        data = payload.model_dump(exclude_unset=True)
        if "weekly_rules" in data and not payload.weekly_rules:
            raise InvalidInput("At least one weekly schedule is required")
        if payload.exceptions:
            _check_unique_dates(payload.exceptions)
        if payload.timezone is not None:
            zone_for(payload.timezone)

        try:
            if payload.weekly_rules is not None:
                await self.repo.replace_rules(obj, payload.weekly_rules)
            if "exceptions" in data:
                await self.repo.replace_exceptions(obj, payload.exceptions or [])
            if payload.timezone is not None:
                obj.timezone = payload.timezone
            if payload.advance_booking_days is not None:
                obj.advance_booking_days = payload.advance_booking_days
            obj.updated_at = utcnow()
            await OutboxService(self.s).enqueue("SCHEDULE_PATCHED", "schedule", obj.id, {
                "provider_id": str(provider_id), "fields": sorted(data.keys()),
            })
        except IntegrityError as e:
            await self.s.rollback()
            logger.warning(f"Schedule patch for provider {provider_id} hit a constraint: {e.orig}")
            raise Conflict("Schedule was modified concurrently or has a duplicate key")
        await self._commit()
        return obj

    async def delete_schedule(self, principal: Principal, provider_id: uuid.UUID) -> dict:
        await self._writable(principal, provider_id)
        obj = await self.repo.get_for_provider(provider_id)
        if not obj:
            raise NotFound("Availability schedule not found")
        schedule_id = obj.id
        await self.repo.delete(obj)
        await OutboxService(self.s).enqueue("SCHEDULE_DELETED", "schedule", schedule_id, {"provider_id": str(provider_id)})
        await self._commit()
        logger.info(f"Schedule {schedule_id} deleted for provider {provider_id}")
        return {"message": "Availability schedule deleted successfully", "deleted_schedule_id": schedule_id}

    # ---- slots ----
    async def get_slots(self, principal: Principal, provider_id: uuid.UUID, day: str | dt.date | None) -> dict:
        await self._readable(principal, provider_id)
        day = parse_day(day)
        schedule = await self.repo.get_for_provider(provider_id)
        if not schedule:
            raise NotConfigured("Provider has not set up availability schedule")

        result = {"provider_id": provider_id, "date": day, "slots": [], "timezone": schedule.timezone}
        reason = horizon_message(schedule, day, local_today(schedule, _now()))
        if reason:
            return {**result, "message": reason}

        plan = plan_day(schedule, day)
        if not plan.is_open:
            return {**result, "message": plan.message}

        taken = await self.bookings.active_time_slots(provider_id, day)
        slots = []
        for slot in plan.slots():
            entry = slot.as_dict()
            if slot.start in taken:
                entry["available"] = False
            slots.append(entry)
        logger.debug(f"Generated {len(slots)} slots for provider {provider_id} on {day}")
        return {
            **result,
            "slots": slots,
            "effective_window": plan.effective_window,
            "slot_duration_minutes": plan.rule.slot_duration_minutes,
            "buffer_minutes": plan.rule.buffer_minutes,
            "message": plan.message,
        }

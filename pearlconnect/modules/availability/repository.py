import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pearlconnect.modules.availability.models import ProviderSchedule, DayRule, DateException
from pearlconnect.modules.availability.schemas import DayRuleIn, DateExceptionIn

def build_rules(rules: list[DayRuleIn]) -> list[DayRule]:
    out = []
    for pos, r in enumerate(rules):
        data = r.model_dump(exclude={"breaks"})
        out.append(DayRule(position=pos, breaks=[b.model_dump(mode="json") for b in r.breaks], **data))
    return out

def build_exceptions(exceptions: list[DateExceptionIn]) -> list[DateException]:
    return [DateException(**e.model_dump()) for e in exceptions]

class ScheduleRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def get_for_provider(self, provider_id: uuid.UUID) -> ProviderSchedule | None:
        res = await self.s.execute(select(ProviderSchedule).where(ProviderSchedule.provider_id == provider_id))
        return res.scalar_one_or_none()

    async def create(self, provider_id: uuid.UUID, *, timezone: str, advance_booking_days: int, weekly_rules: list[DayRuleIn], exceptions: list[DateExceptionIn]) -> ProviderSchedule:
        obj = ProviderSchedule(
            provider_id=provider_id,
            timezone=timezone,
            advance_booking_days=advance_booking_days,
            weekly_rules=build_rules(weekly_rules),
            exceptions=build_exceptions(exceptions),
        )
        self.s.add(obj); await self.s.flush(); return obj

    async def replace_rules(self, obj: ProviderSchedule, rules: list[DayRuleIn]):
        obj.weekly_rules.clear()
        await self.s.flush()
        obj.weekly_rules.extend(build_rules(rules))
        await self.s.flush()

    async def replace_exceptions(self, obj: ProviderSchedule, exceptions: list[DateExceptionIn]):
        # old rows must be gone before new ones land, or (schedule_id, date) collides
        obj.exceptions.clear()
        await self.s.flush()
        obj.exceptions.extend(build_exceptions(exceptions))
        await self.s.flush()

    async def delete(self, obj: ProviderSchedule):
        await self.s.delete(obj); await self.s.flush()

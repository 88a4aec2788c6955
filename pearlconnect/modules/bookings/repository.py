import uuid
import datetime as dt
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from pearlconnect.modules.bookings.models import Booking, ACTIVE_STATUSES

class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Booking:
        obj = Booking(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, booking_id: uuid.UUID) -> Booking | None:
        return await self.session.get(Booking, booking_id)

    async def find_active(self, provider_id: uuid.UUID, day: dt.date, time_slot: dt.time) -> Booking | None:
        q = select(Booking).where(and_(
            Booking.provider_id == provider_id,
            Booking.date == day,
            Booking.time_slot == time_slot,
            Booking.status.in_(ACTIVE_STATUSES),
        ))
        res = await self.session.execute(q)
        return res.scalars().first()

    async def active_time_slots(self, provider_id: uuid.UUID, day: dt.date) -> set[dt.time]:
        q = select(Booking.time_slot).where(and_(
            Booking.provider_id == provider_id,
            Booking.date == day,
            Booking.status.in_(ACTIVE_STATUSES),
        ))
        res = await self.session.execute(q)
        return set(res.scalars().all())

    async def list(self, *, party_id: uuid.UUID | None = None, status: str | None = None) -> Sequence[Booking]:
        cond = []
        if party_id:
            cond.append(or_(Booking.customer_id == party_id, Booking.provider_id == party_id))
        if status:
            cond.append(Booking.status == status)
        q = select(Booking).where(*cond).order_by(Booking.scheduled_at.asc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def delete(self, obj: Booking):
        await self.session.delete(obj)
        await self.session.flush()

"""
Transactional outbox for schedule and booking changes.

Services call ``OutboxService.enqueue`` inside the same transaction as the
change, so an event exists if and only if the change committed. A background
relay (``run_outbox_relay``, started from ``main``) claims due rows, publishes
them to the configured event bus and records the outcome. A publish failure
schedules a retry with exponential backoff; after ``OUTBOX_MAX_ATTEMPTS`` the
row is parked as ``failed`` for manual inspection.
"""
import uuid
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import TIMESTAMP, String, Integer, Text, JSON, Index, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pearlconnect.core.base import Base, TimestampedMixin, utcnow
from pearlconnect.core.config import settings
from pearlconnect.platform.ports.event_bus import DomainEvent, EventBusPort
from pearlconnect.platform.provider_registry import registry

log = logging.getLogger("event.outbox")

OUTBOX_STATUSES = ("pending", "processing", "sent", "failed")

class EventOutbox(Base, TimestampedMixin):
    event_type: Mapped[str] = mapped_column(String(64))
    subject_type: Mapped[str] = mapped_column(String(32))   # schedule | booking
    subject_id: Mapped[str] = mapped_column(String(64))
    payload: Mapped[dict] = mapped_column(JSON)
    occurred_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=utcnow)

    status: Mapped[str] = mapped_column(String(16), default="pending")
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_attempt_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=utcnow)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_outbox_due", "status", "next_attempt_at"),)

    def to_event(self) -> DomainEvent:
        return DomainEvent(
            event_type=self.event_type,
            subject_type=self.subject_type,
            subject_id=self.subject_id,
            payload=self.payload or {},
            occurred_at=self.occurred_at,
            outbox_id=str(self.id),
        )

def retry_delay(attempts: int) -> timedelta:
    # 2, 4, 8, 16, 32, then capped at 60 seconds
    return timedelta(seconds=min(60, 2 ** min(attempts, 6)))

class OutboxRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: DomainEvent) -> EventOutbox:
        now = utcnow()
        obj = EventOutbox(
            event_type=event.event_type,
            subject_type=event.subject_type,
            subject_id=event.subject_id,
            payload=event.payload,
            occurred_at=event.occurred_at or now,
            status="pending",
            attempts=0,
            next_attempt_at=now,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def claim_due(self, limit: int = 50) -> list[EventOutbox]:
        # FOR UPDATE SKIP LOCKED lets several relays share the table on Postgres
        q = (
            select(EventOutbox)
            .where(EventOutbox.status == "pending", EventOutbox.next_attempt_at <= utcnow())
            .order_by(EventOutbox.created_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        rows = list((await self.session.execute(q)).scalars().all())
        for r in rows:
            r.status = "processing"
        await self.session.flush()
        return rows

    async def mark_sent(self, obj: EventOutbox):
        obj.status = "sent"
        obj.last_error = None
        await self.session.flush()

    async def mark_failed(self, obj: EventOutbox, error: str, max_attempts: int):
        obj.attempts = (obj.attempts or 0) + 1
        obj.last_error = error[:2000]
        if obj.attempts >= max_attempts:
            obj.status = "failed"
            log.error(f"Outbox event {obj.id} ({obj.event_type}) parked after {obj.attempts} attempts: {obj.last_error}")
        else:
            obj.status = "pending"
            obj.next_attempt_at = utcnow() + retry_delay(obj.attempts)
        await self.session.flush()

class OutboxService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = OutboxRepository(session)

    async def enqueue(self, event_type: str, subject_type: str, subject_id: str | uuid.UUID, payload: dict, occurred_at: datetime | None = None) -> EventOutbox:
        return await self.repo.add(DomainEvent(
            event_type=event_type,
            subject_type=subject_type,
            subject_id=str(subject_id),
            payload=payload,
            occurred_at=occurred_at,
        ))

# ---- Background relay ----

async def relay_once(session: AsyncSession, bus: EventBusPort, limit: int = 50, max_attempts: int | None = None) -> int:
    """Publish one claimed batch and commit the outcome; returns how many rows were claimed."""
    max_attempts = max_attempts or settings.OUTBOX_MAX_ATTEMPTS
    repo = OutboxRepository(session)
    batch = await repo.claim_due(limit=limit)
    for row in batch:
        try:
            await bus.publish(row.to_event())
        except Exception as ex:
            log.exception(f"Publish failed for outbox event {row.id}")
            await repo.mark_failed(row, error=str(ex), max_attempts=max_attempts)
        else:
            await repo.mark_sent(row)
    await session.commit()
    return len(batch)

async def run_outbox_relay(session_factory: async_sessionmaker, poll_interval_seconds: float = 1.0):
    bus = registry.event_bus()
    log.info("Outbox relay started with bus=%s", bus.__class__.__name__)
    try:
        while True:
            async with session_factory() as session:
                try:
                    claimed = await relay_once(session, bus)
                except Exception:
                    log.exception("Outbox relay iteration failed")
                    await session.rollback()
                    claimed = 0
            # drain quickly while there is a backlog, otherwise poll
            await asyncio.sleep(0 if claimed else poll_interval_seconds)
    except asyncio.CancelledError:
        log.info("Outbox relay cancelled; shutting down")
        raise

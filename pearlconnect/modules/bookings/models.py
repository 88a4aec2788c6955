import uuid
import datetime as dt
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Date, Time, TIMESTAMP, ForeignKey, Index, text
from pearlconnect.core.base import Base, TimestampedMixin

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled")
ACTIVE_STATUSES = ("pending", "confirmed")

_ACTIVE_PREDICATE = text("status IN ('pending', 'confirmed')")

class Booking(Base, TimestampedMixin):
    service_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("service.id"), index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), index=True)
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), index=True)

    date: Mapped[dt.date] = mapped_column(Date)
    time_slot: Mapped[dt.time] = mapped_column(Time)  # slot start, provider's wall clock
    scheduled_at: Mapped[dt.datetime] = mapped_column(TIMESTAMP(timezone=True))  # same instant in UTC

    status: Mapped[str] = mapped_column(String(16), default="pending")  # pending, confirmed, completed, cancelled
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # at most one active booking per provider/date/slot; the storage layer arbitrates races
        Index(
            "uq_booking_active_slot",
            "provider_id", "date", "time_slot",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("idx_booking_provider_date", "provider_id", "date"),
    )

import uuid
import datetime as dt
from datetime import time
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, Date, Time, ForeignKey, JSON, UniqueConstraint
from pearlconnect.core.base import Base, TimestampedMixin
from pearlconnect.core.config import settings

# One calendar per provider: weekly rules + dated exceptions, all in the provider's local wall clock
class ProviderSchedule(Base, TimestampedMixin):
    provider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), unique=True, index=True)
    timezone: Mapped[str] = mapped_column(String(64), default=lambda: settings.DEFAULT_TIMEZONE)
    advance_booking_days: Mapped[int] = mapped_column(Integer, default=lambda: settings.DEFAULT_ADVANCE_BOOKING_DAYS)

    weekly_rules: Mapped[list["DayRule"]] = relationship(
        back_populates="schedule", cascade="all, delete-orphan",
        order_by="DayRule.position", lazy="selectin",
    )
    exceptions: Mapped[list["DateException"]] = relationship(
        back_populates="schedule", cascade="all, delete-orphan",
        order_by="DateException.date", lazy="selectin",
    )

# day_of_week 0=Sun..6=Sat; the first enabled rule for a weekday is authoritative
class DayRule(Base, TimestampedMixin):
    schedule_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("providerschedule.id", ondelete="CASCADE"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    day_of_week: Mapped[int] = mapped_column(Integer)
    enabled: Mapped[bool] = mapped_column(default=True)
    start_time: Mapped[time] = mapped_column(Time)
    end_time: Mapped[time] = mapped_column(Time)
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, default=60)
    buffer_minutes: Mapped[int] = mapped_column(Integer, default=0)
    # [{"start_time": "12:00 PM", "end_time": "1:00 PM", "reason": "Lunch"}]
    breaks: Mapped[list[dict]] = mapped_column(JSON, default=list)

    schedule: Mapped[ProviderSchedule] = relationship(back_populates="weekly_rules")

class DateException(Base, TimestampedMixin):
    schedule_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("providerschedule.id", ondelete="CASCADE"), index=True)
    date: Mapped[dt.date] = mapped_column(Date)
    is_available: Mapped[bool] = mapped_column(default=True)
    custom_start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    custom_end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)

    schedule: Mapped[ProviderSchedule] = relationship(back_populates="exceptions")

    __table_args__ = (UniqueConstraint("schedule_id", "date", name="uq_dateexception_schedule_date"),)

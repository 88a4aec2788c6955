"""
Slot generation for a provider's day.

Turns a ``ProviderSchedule`` and a calendar date into the grid of bookable
windows:

1. Resolve the effective window. A ``DateException`` for the date wins over
   the weekly rule: an unavailable exception closes the day, and an available
   one may move the start and/or end. Otherwise the first enabled ``DayRule``
   for the weekday applies.
2. Walk from the window start in steps of ``slot_duration + buffer``. Every
   candidate ``[cursor, cursor + slot_duration)`` that ends by the window end
   is emitted.
3. A candidate that overlaps any break, to the minute, is emitted with
   ``available=False``. Partial overlap counts as overlap.

Nothing here touches storage or the clock, so the same schedule and date always
produce the same sequence.
"""
import datetime as dt
from dataclasses import dataclass, field
from typing import Iterator

from pearlconnect.modules.availability.clock import as_time, format_clock, from_minutes, to_minutes
from pearlconnect.modules.availability.models import DateException, DayRule, ProviderSchedule


@dataclass(frozen=True)
class Slot:
    start: dt.time
    end: dt.time
    available: bool = True

    @property
    def start_time(self) -> str:
        return format_clock(self.start)

    @property
    def end_time(self) -> str:
        return format_clock(self.end)

    def overlaps(self, other: "Slot") -> bool:
        return self.start < other.end and self.end > other.start

    def as_dict(self) -> dict:
        return {"start_time": self.start_time, "end_time": self.end_time, "available": self.available}


@dataclass(frozen=True)
class DayPlan:
    """The resolved window for one date. ``slots()`` is restartable; each call walks the grid afresh."""
    day: dt.date
    rule: DayRule | None = None
    start_minute: int | None = None
    end_minute: int | None = None
    message: str | None = None
    breaks: tuple[tuple[int, int], ...] = field(default_factory=tuple)

    @property
    def is_open(self) -> bool:
        return self.rule is not None and self.start_minute is not None and self.end_minute is not None

    @property
    def effective_window(self) -> dict | None:
        if not self.is_open:
            return None
        return {"start_time": format_clock(from_minutes(self.start_minute)), "end_time": format_clock(from_minutes(self.end_minute))}

    def slots(self) -> Iterator[Slot]:
        if not self.is_open:
            return
        duration = self.rule.slot_duration_minutes
        step = duration + (self.rule.buffer_minutes or 0)
        cursor = self.start_minute
        while cursor + duration <= self.end_minute:
            slot_end = cursor + duration
            during_break = any(cursor < b_end and slot_end > b_start for b_start, b_end in self.breaks)
            yield Slot(from_minutes(cursor), from_minutes(slot_end), available=not during_break)
            # uniform grid: advance by the full step whether or not the slot was usable
            cursor += step


def weekday_index(day: dt.date) -> int:
    """0=Sunday..6=Saturday (``date.weekday()`` counts from Monday)."""
    return (day.weekday() + 1) % 7


def find_rule(schedule: ProviderSchedule, day: dt.date) -> DayRule | None:
    dow = weekday_index(day)
    for rule in schedule.weekly_rules:
        if rule.day_of_week == dow and rule.enabled:
            return rule
    return None


def find_exception(schedule: ProviderSchedule, day: dt.date) -> DateException | None:
    for exc in schedule.exceptions:
        if exc.date == day:
            return exc
    return None


def _break_bounds(rule: DayRule) -> tuple[tuple[int, int], ...]:
    bounds = []
    for b in rule.breaks or []:
        bounds.append((to_minutes(as_time(b["start_time"])), to_minutes(as_time(b["end_time"]))))
    return tuple(bounds)


def plan_day(schedule: ProviderSchedule, day: dt.date) -> DayPlan:
    exception = find_exception(schedule, day)
    if exception is not None and not exception.is_available:
        return DayPlan(day=day, message=exception.reason or "Unavailable due to exception")

    rule = find_rule(schedule, day)
    if rule is None:
        return DayPlan(day=day, message="No available slots for this day")

    start, end = rule.start_time, rule.end_time
    if exception is not None:
        start = exception.custom_start_time or start
        end = exception.custom_end_time or end

    start_minute, end_minute = to_minutes(start), to_minutes(end)
    if start_minute >= end_minute:
        return DayPlan(day=day, message="No available slots for this day")

    return DayPlan(
        day=day,
        rule=rule,
        start_minute=start_minute,
        end_minute=end_minute,
        message=exception.reason if exception is not None else None,
        breaks=_break_bounds(rule),
    )


def generate_slots(schedule: ProviderSchedule, day: dt.date) -> list[Slot]:
    return list(plan_day(schedule, day).slots())


def find_slot(schedule: ProviderSchedule, day: dt.date, start: dt.time) -> Slot | None:
    for slot in plan_day(schedule, day).slots():
        if slot.start == start:
            return slot
    return None


def horizon_message(schedule: ProviderSchedule, day: dt.date, today: dt.date) -> str | None:
    """Why ``day`` is outside the bookable horizon, or None when it is inside."""
    if day < today:
        return "Date is in the past"
    if day > today + dt.timedelta(days=schedule.advance_booking_days):
        return f"Bookings open at most {schedule.advance_booking_days} days in advance"
    return None

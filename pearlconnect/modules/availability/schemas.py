import uuid
import datetime as dt
from typing import Annotated
from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer, model_validator
from pearlconnect.modules.availability.clock import as_time, format_clock, to_minutes

# "9:30 AM" on the wire, datetime.time inside and in python-mode dumps
ClockTime = Annotated[dt.time, BeforeValidator(as_time), PlainSerializer(format_clock, return_type=str, when_used="json")]

class BreakTime(BaseModel):
    start_time: ClockTime
    end_time: ClockTime
    reason: str = Field(default="Break", pattern="^(Break|Lunch|Meeting|Travel|Personal|Maintenance|Cleaning)$")

    @model_validator(mode="after")
    def _ordered(self):
        if self.start_time >= self.end_time:
            raise ValueError("break start_time must be before end_time")
        return self

class DayRuleIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday
    enabled: bool = True
    start_time: ClockTime
    end_time: ClockTime
    slot_duration_minutes: int = Field(default=60, ge=15, le=480)
    buffer_minutes: int = Field(default=0, ge=0, le=120)
    breaks: list[BreakTime] = []

    @model_validator(mode="after")
    def _window_fits_slot(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if self.slot_duration_minutes > to_minutes(self.end_time) - to_minutes(self.start_time):
            raise ValueError("slot_duration_minutes does not fit between start_time and end_time")
        return self

class DayRuleOut(DayRuleIn):
    id: uuid.UUID
    class Config: from_attributes = True

class DateExceptionIn(BaseModel):
    date: dt.date
    is_available: bool = True
    custom_start_time: ClockTime | None = None
    custom_end_time: ClockTime | None = None
    reason: str | None = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def _custom_window(self):
        if self.custom_start_time and self.custom_end_time and self.custom_start_time >= self.custom_end_time:
            raise ValueError("custom_start_time must be before custom_end_time")
        return self

class DateExceptionOut(DateExceptionIn):
    id: uuid.UUID
    class Config: from_attributes = True

class ScheduleSet(BaseModel):
    weekly_rules: list[DayRuleIn] = Field(min_length=1)
    exceptions: list[DateExceptionIn] = []
    timezone: str | None = None
    advance_booking_days: int | None = Field(default=None, ge=0, le=365)

class SchedulePatch(BaseModel):
    weekly_rules: list[DayRuleIn] | None = None
    exceptions: list[DateExceptionIn] | None = None
    timezone: str | None = None
    advance_booking_days: int | None = Field(default=None, ge=0, le=365)

class ScheduleOut(BaseModel):
    id: uuid.UUID
    provider_id: uuid.UUID
    timezone: str
    advance_booking_days: int
    weekly_rules: list[DayRuleOut]
    exceptions: list[DateExceptionOut]
    created_at: dt.datetime
    updated_at: dt.datetime
    class Config: from_attributes = True

class ScheduleDeleted(BaseModel):
    message: str
    deleted_schedule_id: uuid.UUID

class SlotOut(BaseModel):
    start_time: str
    end_time: str
    available: bool

class EffectiveWindow(BaseModel):
    start_time: str
    end_time: str

class SlotsOut(BaseModel):
    provider_id: uuid.UUID
    date: dt.date
    slots: list[SlotOut]
    effective_window: EffectiveWindow | None = None
    timezone: str
    slot_duration_minutes: int | None = None
    buffer_minutes: int | None = None
    message: str | None = None

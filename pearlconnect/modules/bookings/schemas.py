import uuid
import datetime as dt
from pydantic import BaseModel, Field, field_serializer
from pearlconnect.modules.availability.clock import format_clock

class BookingCreate(BaseModel):
    # presence and format are checked by the booking pipeline, in order, not at parse time
    service_id: uuid.UUID | None = None
    customer_id: uuid.UUID | None = None
    provider_id: uuid.UUID | None = None
    date: str | None = None
    time_slot: str | None = None
    notes: str | None = Field(default=None, max_length=2000)

class BookingPatch(BaseModel):
    status: str | None = None
    notes: str | None = Field(default=None, max_length=2000)

class BookingOut(BaseModel):
    id: uuid.UUID
    service_id: uuid.UUID
    customer_id: uuid.UUID
    provider_id: uuid.UUID
    date: dt.date
    time_slot: dt.time
    scheduled_at: dt.datetime
    status: str
    notes: str | None = None
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True

    @field_serializer("time_slot")
    def _clock(self, value: dt.time) -> str:
        return format_clock(value)

class BookingDeleted(BaseModel):
    message: str
    id: uuid.UUID

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

@dataclass(frozen=True)
class DomainEvent:
    """A schedule or booking change as it leaves the outbox."""
    event_type: str          # SCHEDULE_SET, BOOKING_CREATED, ...
    subject_type: str        # "schedule" | "booking"
    subject_id: str
    payload: dict = field(default_factory=dict)
    occurred_at: datetime | None = None
    outbox_id: str | None = None

    def as_message(self) -> dict:
        return {
            "event_type": self.event_type,
            "subject": {"type": self.subject_type, "id": self.subject_id},
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "outbox_id": self.outbox_id,
        }

@runtime_checkable
class EventBusPort(Protocol):
    async def publish(self, event: DomainEvent) -> None: ...

    async def close(self) -> None: ...

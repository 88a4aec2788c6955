import json
import logging
from pearlconnect.platform.ports.event_bus import DomainEvent

log = logging.getLogger("bus.noop")

class NoopEventBus:
    """Logs events and keeps them in memory; used locally and in tests."""

    def __init__(self):
        self.published: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.published.append(event)
        log.info(f"[NOOP BUS] {event.event_type} {event.subject_type}={event.subject_id} {json.dumps(event.payload)}")

    def of_type(self, event_type: str) -> list[DomainEvent]:
        return [e for e in self.published if e.event_type == event_type]

    async def close(self) -> None:
        self.published.clear()

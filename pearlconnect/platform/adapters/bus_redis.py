import json
import logging
from redis.asyncio import from_url as redis_from_url
from pearlconnect.core.config import settings
from pearlconnect.platform.ports.event_bus import DomainEvent

log = logging.getLogger("bus.redis")

class RedisEventBus:
    """
    Publishes to one Redis stream per subject type, e.g. ``pearlconnect.events.booking``.

    Consumers that only care about bookings read a single stream; the subject id
    is carried as a field so a consumer group can partition on it.
    """

    def __init__(self, url: str | None = None, prefix: str | None = None, maxlen: int | None = None):
        url = url or settings.REDIS_URL
        if not url:
            raise RuntimeError("REDIS_URL not configured")
        self.redis = redis_from_url(url, encoding="utf-8", decode_responses=True)
        self.prefix = prefix or settings.REDIS_STREAM or "pearlconnect.events"
        self.maxlen = maxlen or settings.REDIS_STREAM_MAXLEN

    def stream_for(self, event: DomainEvent) -> str:
        return f"{self.prefix}.{event.subject_type}"

    async def publish(self, event: DomainEvent) -> None:
        stream = self.stream_for(event)
        fields = {
            "event_type": event.event_type,
            "subject_id": event.subject_id,
            "message": json.dumps(event.as_message()),
        }
        await self.redis.xadd(stream, fields, maxlen=self.maxlen, approximate=True)
        log.debug(f"[REDIS BUS] XADD stream={stream} event={event.event_type} subject={event.subject_id}")

    async def close(self) -> None:
        await self.redis.aclose()

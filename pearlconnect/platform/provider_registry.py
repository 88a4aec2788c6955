from pearlconnect.core.config import settings
from pearlconnect.platform.ports.event_bus import EventBusPort
from pearlconnect.platform.adapters.bus_noop import NoopEventBus
from pearlconnect.platform.adapters.bus_redis import RedisEventBus

class ProviderRegistry:
    _event_bus: EventBusPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            elif prov == "noop":
                cls._event_bus = NoopEventBus()
            else:
                raise RuntimeError(f"Unknown EVENT_BUS_PROVIDER: {prov}")
        return cls._event_bus

    @classmethod
    def use_event_bus(cls, bus: EventBusPort):
        cls._event_bus = bus

    @classmethod
    async def aclose(cls):
        if cls._event_bus is not None:
            await cls._event_bus.close()
        cls._event_bus = None

    @classmethod
    def reset(cls):
        cls._event_bus = None

registry = ProviderRegistry()

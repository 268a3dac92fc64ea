"""Event-bus adapter and the buses it runs on."""

from .bus import (
    BusMessage,
    DeliveryOptions,
    EventBus,
    LocalEventBus,
    Registration,
    ReplyFailure,
    ReplyResult,
    ReplySlot,
)
from .client import EventBusTransportClient, EventBusTransportConfig, bus_address
from .redis_bus import RedisEventBus

__all__ = [
    "BusMessage",
    "DeliveryOptions",
    "EventBus",
    "EventBusTransportClient",
    "EventBusTransportConfig",
    "LocalEventBus",
    "RedisEventBus",
    "Registration",
    "ReplyFailure",
    "ReplyResult",
    "ReplySlot",
    "bus_address",
]

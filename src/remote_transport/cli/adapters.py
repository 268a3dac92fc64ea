"""
Helpers for resolving transport adapters in CLI contexts.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ..adapters import EventBusTransportClient, GrpcTransportClient, RestTransportClient
from ..adapters.eventbus.client import EventBusTransportConfig
from ..config import ConfigError, TransportSettings

_CLIENTS: Dict[str, Callable[[], Any]] = {
    "rest": RestTransportClient,
    "grpc": GrpcTransportClient,
    "eventbus": EventBusTransportClient,
}


def available_transports() -> tuple[str, ...]:
    return tuple(_CLIENTS)


def resolve_transport(name: str, settings: TransportSettings, *, config: Optional[Any] = None) -> Any:
    """
    Build and configure the adapter registered under ``name``.

    The adapter config comes from ``config`` when given, otherwise from the
    matching section of ``settings``. The event-bus adapter falls back to an
    in-process bus when no ``[eventbus]`` section exists.
    """

    factory = _CLIENTS.get(name)
    if factory is None:
        raise ConfigError(f"Unknown transport '{name}'. Expected one of: {', '.join(_CLIENTS)}.")
    if config is None:
        if name == "eventbus" and settings.eventbus is None:
            config = EventBusTransportConfig()
        else:
            config = settings.for_transport(name)
    client = factory()
    client.configure(config)
    return client

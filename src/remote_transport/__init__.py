"""
Protocol-agnostic remote data transport.

Build a :class:`TransportRequest`, hand it to a configured adapter
(:class:`RestTransportClient`, :class:`GrpcTransportClient` or
:class:`EventBusTransportClient`) and receive a :class:`TransportResponse`;
:class:`RemoteRepository` layers CRUD semantics on top of any adapter.
"""

from .adapters import (
    EventBusTransportClient,
    EventBusTransportConfig,
    GrpcTransportClient,
    GrpcTransportConfig,
    RestTransportClient,
    RestTransportConfig,
)
from .config import ConfigError, TransportSettings, load_transport_settings
from .core import EntityInformation, EntityRegistry, attribute_accessor
from .repository import RemoteRepository
from .transport import (
    ErrorKind,
    TransportClient,
    TransportError,
    TransportOperation,
    TransportRequest,
    TransportResponse,
    UnsupportedOperationError,
)

__all__ = [
    "ConfigError",
    "EntityInformation",
    "EntityRegistry",
    "ErrorKind",
    "EventBusTransportClient",
    "EventBusTransportConfig",
    "GrpcTransportClient",
    "GrpcTransportConfig",
    "RemoteRepository",
    "RestTransportClient",
    "RestTransportConfig",
    "TransportClient",
    "TransportError",
    "TransportOperation",
    "TransportRequest",
    "TransportResponse",
    "TransportSettings",
    "UnsupportedOperationError",
    "attribute_accessor",
    "load_transport_settings",
]

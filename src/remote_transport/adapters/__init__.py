"""
Transport adapters.

Each adapter implements :class:`remote_transport.transport.TransportClient`
for one protocol and owns exactly one long-lived resource created by
``configure`` and released by ``shutdown``.
"""

from .eventbus import EventBusTransportClient, EventBusTransportConfig
from .grpc import GrpcTransportClient, GrpcTransportConfig
from .rest import RestTransportClient, RestTransportConfig

__all__ = [
    "EventBusTransportClient",
    "EventBusTransportConfig",
    "GrpcTransportClient",
    "GrpcTransportConfig",
    "RestTransportClient",
    "RestTransportConfig",
]

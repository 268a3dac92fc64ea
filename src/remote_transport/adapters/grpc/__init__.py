"""gRPC adapter for the remote data service."""

from .client import GrpcTransportClient, GrpcTransportConfig
from .service import RemoteDataServiceServicer, RemoteDataServiceStub, add_remote_data_service_to_server

__all__ = [
    "GrpcTransportClient",
    "GrpcTransportConfig",
    "RemoteDataServiceServicer",
    "RemoteDataServiceStub",
    "add_remote_data_service_to_server",
]

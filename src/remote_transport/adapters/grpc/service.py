"""
Client stub and server registration for ``remote.data.v1.RemoteDataService``.

Shaped like a ``*_pb2_grpc`` module, but driven by
:data:`remote_transport.protocol.messages.SERVICE_METHODS` so no code
generation step is needed.
"""

from __future__ import annotations

from typing import Any, Dict

import grpc

from ...protocol.messages import MESSAGE_CLASSES, SERVICE_METHODS, SERVICE_NAME


def method_path(method: str) -> str:
    return f"/{SERVICE_NAME}/{method}"


class RemoteDataServiceStub:
    """Unary callables, one attribute per service method (``GetById``, ``Count``...)."""

    def __init__(self, channel: grpc.Channel) -> None:
        for method, (request_name, response_name) in SERVICE_METHODS.items():
            callable_ = channel.unary_unary(
                method_path(method),
                request_serializer=MESSAGE_CLASSES[request_name].SerializeToString,
                response_deserializer=MESSAGE_CLASSES[response_name].FromString,
            )
            setattr(self, method, callable_)


class RemoteDataServiceServicer:
    """Base class for service implementations. Unimplemented methods answer UNIMPLEMENTED."""

    def _unimplemented(self, context: grpc.ServicerContext) -> None:
        context.set_code(grpc.StatusCode.UNIMPLEMENTED)
        context.set_details("Method not implemented!")
        raise NotImplementedError("Method not implemented!")

    def GetById(self, request: Any, context: grpc.ServicerContext) -> Any:
        self._unimplemented(context)

    def GetAll(self, request: Any, context: grpc.ServicerContext) -> Any:
        self._unimplemented(context)

    def Save(self, request: Any, context: grpc.ServicerContext) -> Any:
        self._unimplemented(context)

    def Delete(self, request: Any, context: grpc.ServicerContext) -> Any:
        self._unimplemented(context)

    def Exists(self, request: Any, context: grpc.ServicerContext) -> Any:
        self._unimplemented(context)

    def Count(self, request: Any, context: grpc.ServicerContext) -> Any:
        self._unimplemented(context)


def add_remote_data_service_to_server(servicer: RemoteDataServiceServicer, server: grpc.Server) -> None:
    handlers: Dict[str, grpc.RpcMethodHandler] = {}
    for method, (request_name, response_name) in SERVICE_METHODS.items():
        handlers[method] = grpc.unary_unary_rpc_method_handler(
            getattr(servicer, method),
            request_deserializer=MESSAGE_CLASSES[request_name].FromString,
            response_serializer=MESSAGE_CLASSES[response_name].SerializeToString,
        )
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(SERVICE_NAME, handlers),))

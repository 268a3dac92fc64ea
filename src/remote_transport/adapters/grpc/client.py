"""
RPC adapter over ``grpcio``.

Each operation maps onto one unary method of ``RemoteDataService`` (see
:data:`remote_transport.protocol.converters.BINDINGS`). Every invocation
carries the configured deadline and metadata. A reachable server that answers
with an error status yields a non-success response; an unreachable server or
an expired deadline raises a connection-failure
:class:`~remote_transport.transport.errors.TransportError`.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from logging import LoggerAdapter
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import grpc

from ...core.logging import get_logger, log_event
from ...protocol.converters import OperationBinding, binding_for
from ...transport.base import (
    SINGLE_ENTITY_OPERATIONS,
    ensure_list_operation,
    ensure_single_operation,
    validate_request,
)
from ...transport.errors import TransportError
from ...transport.request import TransportRequest
from ...transport.response import TransportResponse
from ...transport.serialization import parse_flag
from .service import RemoteDataServiceStub

DEFAULT_PORT = 9090
DEFAULT_MAX_INBOUND_MESSAGE_SIZE = 4 * 1024 * 1024
DEFAULT_DEADLINE_MS = 30_000

_CONNECTION_STATUSES = frozenset({grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED})


@dataclass(slots=True)
class GrpcTransportConfig:
    """
    Settings for :class:`GrpcTransportClient`.

    Parameters
    ----------
    host:
        Server host name.
    port:
        Server port.
    use_tls:
        Use a secure channel with default root certificates.
    max_inbound_message_size:
        Largest response the channel accepts, in bytes.
    deadline_ms:
        Per-call deadline. ``0`` or less disables it.
    metadata:
        Call metadata attached to every invocation. Keys are lower-cased.
    """

    host: str
    port: int = DEFAULT_PORT
    use_tls: bool = False
    max_inbound_message_size: int = DEFAULT_MAX_INBOUND_MESSAGE_SIZE
    deadline_ms: int = DEFAULT_DEADLINE_MS
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.metadata = MappingProxyType({str(k).lower(): str(v) for k, v in (self.metadata or {}).items()})

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"

    def validate(self) -> None:
        if not self.host or not str(self.host).strip():
            raise ValueError("gRPC host is required")
        if not 0 < self.port < 65536:
            raise ValueError(f"gRPC port out of range: {self.port}")
        if self.max_inbound_message_size <= 0:
            raise ValueError("max_inbound_message_size must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GrpcTransportConfig":
        values = {str(key).replace("-", "_"): value for key, value in data.items()}
        return cls(
            host=str(values.get("host") or ""),
            port=int(values.get("port", DEFAULT_PORT)),
            use_tls=parse_flag(values.get("use_tls", False)),
            max_inbound_message_size=int(values.get("max_inbound_message_size", DEFAULT_MAX_INBOUND_MESSAGE_SIZE)),
            deadline_ms=int(values.get("deadline_ms", DEFAULT_DEADLINE_MS)),
            metadata=dict(values.get("metadata") or {}),
        )


class GrpcTransportClient:
    """
    Blocking unary RPC implementation of the transport contract.

    Parameters
    ----------
    config:
        Optional configuration applied immediately through :meth:`configure`.
    channel:
        Optional pre-built channel. The client does not close channels it did
        not create.
    """

    def __init__(
        self,
        config: Optional[GrpcTransportConfig] = None,
        *,
        channel: Optional[grpc.Channel] = None,
    ) -> None:
        self._external_channel = channel
        self._channel: Optional[grpc.Channel] = None
        self._stub: Optional[RemoteDataServiceStub] = None
        self._config: Optional[GrpcTransportConfig] = None
        self._closed = False
        self._lock = threading.Lock()
        self.logger: LoggerAdapter = get_logger(f"{__name__}.{self.__class__.__name__}", extra={"transport": "grpc"})
        if config is not None:
            self.configure(config)

    @property
    def config_type(self) -> type:
        return GrpcTransportConfig

    @property
    def config(self) -> Optional[GrpcTransportConfig]:
        return self._config

    def configure(self, config: GrpcTransportConfig) -> None:
        config.validate()
        with self._lock:
            if self._stub is not None:
                raise RuntimeError("GrpcTransportClient is already configured")
            channel = self._external_channel or self._open_channel(config)
            self._channel = channel
            self._stub = RemoteDataServiceStub(channel)
            self._config = config
        log_event(self.logger, logging.DEBUG, "gRPC transport configured", url=config.target)

    @staticmethod
    def _open_channel(config: GrpcTransportConfig) -> grpc.Channel:
        options = [("grpc.max_receive_message_length", config.max_inbound_message_size)]
        if config.use_tls:
            return grpc.secure_channel(config.target, grpc.ssl_channel_credentials(), options=options)
        return grpc.insecure_channel(config.target, options=options)

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            channel = self._channel
            owned = channel is not None and channel is not self._external_channel
        if owned:
            channel.close()
            log_event(self.logger, logging.DEBUG, "gRPC channel closed")

    def __enter__(self) -> "GrpcTransportClient":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.shutdown()

    # ------------------------------------------------------------------ execution

    def execute(self, request: TransportRequest, response_type: Optional[Any] = None) -> TransportResponse[Any]:
        ensure_single_operation(request, SINGLE_ENTITY_OPERATIONS)
        validate_request(request)
        return self._invoke(request, binding_for(request), response_type)

    def execute_for_list(self, request: TransportRequest, element_type: Optional[Any] = None) -> TransportResponse[List[Any]]:
        ensure_list_operation(request)
        return self._invoke(request, binding_for(request, method="execute_for_list"), element_type)

    # ------------------------------------------------------------------ internals

    def _require_stub(self) -> Tuple[RemoteDataServiceStub, GrpcTransportConfig]:
        if self._closed:
            raise RuntimeError("GrpcTransportClient has been shut down")
        if self._stub is None or self._config is None:
            raise RuntimeError("GrpcTransportClient is not configured; call configure() first")
        return self._stub, self._config

    @staticmethod
    def _call_options(config: GrpcTransportConfig) -> dict:
        options: dict = {}
        if config.deadline_ms > 0:
            options["timeout"] = config.deadline_ms / 1000.0
        metadata: Sequence[Tuple[str, str]] = tuple(config.metadata.items())
        if metadata:
            options["metadata"] = metadata
        return options

    def _invoke(self, request: TransportRequest, binding: OperationBinding, target: Optional[Any]) -> TransportResponse[Any]:
        stub, config = self._require_stub()
        try:
            message = binding.build_request(request)
        except (TypeError, ValueError) as exc:
            raise TransportError.serialization_failure(
                f"Failed to serialise request for '{request.resource_name}': {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc

        started = time.perf_counter()
        rpc = getattr(stub, binding.method)
        try:
            reply = rpc(message, **self._call_options(config))
        except grpc.RpcError as exc:
            return self._handle_rpc_error(request, binding, exc)
        except Exception as exc:
            log_event(
                self.logger,
                logging.WARNING,
                "gRPC call failed",
                operation=request.operation.value,
                resource=request.resource_name,
                method=binding.method,
                error=str(exc),
            )
            raise TransportError.connection_failure(
                f"gRPC call {binding.method} failed: {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc

        try:
            response = binding.to_response(reply, target)
        except (TypeError, ValueError) as exc:
            raise TransportError.serialization_failure(
                f"Failed to decode {binding.method} response for '{request.resource_name}': {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc
        log_event(
            self.logger,
            logging.DEBUG,
            "gRPC response",
            operation=request.operation.value,
            resource=request.resource_name,
            method=binding.method,
            status_code=response.status_code,
            success=response.success,
            duration=time.perf_counter() - started,
        )
        return response

    def _handle_rpc_error(
        self,
        request: TransportRequest,
        binding: OperationBinding,
        exc: grpc.RpcError,
    ) -> TransportResponse[Any]:
        code = exc.code() if callable(getattr(exc, "code", None)) else None
        details = exc.details() if callable(getattr(exc, "details", None)) else None
        if not isinstance(code, grpc.StatusCode) or code in _CONNECTION_STATUSES:
            log_event(
                self.logger,
                logging.WARNING,
                "gRPC call failed",
                operation=request.operation.value,
                resource=request.resource_name,
                method=binding.method,
                error=details or str(exc),
            )
            label = code.name if isinstance(code, grpc.StatusCode) else "UNKNOWN"
            raise TransportError.connection_failure(
                f"gRPC call {binding.method} failed with {label}: {details or exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc
        log_event(
            self.logger,
            logging.DEBUG,
            "gRPC error status",
            operation=request.operation.value,
            resource=request.resource_name,
            method=binding.method,
            status_code=code.value[0],
        )
        return TransportResponse.failure(code.value[0], details or code.name)

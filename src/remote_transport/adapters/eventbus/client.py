"""
Event-bus adapter.

Each operation is sent to ``{address_prefix}.{slug}`` as a length-prefixed
protobuf request; the calling thread parks on a :class:`ReplySlot` until the
reply arrives, the bus reports a dispatch failure, or the timeout elapses.
Whichever happens first wins. Timeouts and dispatch failures raise a
connection-failure :class:`~remote_transport.transport.errors.TransportError`;
a reply with ``success=false`` comes back as a non-success response.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from logging import LoggerAdapter
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import redis

from ...core.logging import get_logger, log_event
from ...protocol.converters import OperationBinding, binding_for
from ...transport.base import (
    SINGLE_ENTITY_OPERATIONS,
    ensure_list_operation,
    ensure_single_operation,
    validate_request,
)
from ...transport.errors import TransportError
from ...transport.operation import TransportOperation
from ...transport.request import TransportRequest
from ...transport.response import TransportResponse
from ...transport.serialization import parse_flag
from .bus import DeliveryOptions, EventBus, LocalEventBus, ReplyResult, ReplySlot
from .redis_bus import RedisEventBus

DEFAULT_ADDRESS_PREFIX = "remote-data"
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_CLUSTER_PORT = 6379
SHUTDOWN_TIMEOUT = 10.0
# Extra wait on top of the bus timeout so the bus reports TIMEOUT itself.
_WAIT_SLACK = 0.5


def bus_address(prefix: str, operation: TransportOperation) -> str:
    return f"{prefix}.{operation.bus_slug}"


@dataclass(slots=True)
class EventBusTransportConfig:
    """
    Settings for :class:`EventBusTransportClient`.

    Parameters
    ----------
    address_prefix:
        Prefix of every consumer address.
    clustering_enabled:
        Use the Redis-backed bus instead of the in-process one.
    cluster_host, cluster_port:
        Redis server for clustered mode. Port ``0`` selects 6379.
    timeout_ms:
        Reply timeout per request.
    headers:
        Delivery headers sent with every request.
    event_loop_pool_size, worker_pool_size:
        Thread pool sizes of the bus; ``None`` keeps the bus defaults.
    """

    address_prefix: str = DEFAULT_ADDRESS_PREFIX
    clustering_enabled: bool = False
    cluster_host: Optional[str] = None
    cluster_port: int = 0
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    headers: Mapping[str, str] = field(default_factory=dict)
    event_loop_pool_size: Optional[int] = None
    worker_pool_size: Optional[int] = None

    def __post_init__(self) -> None:
        self.headers = MappingProxyType({str(k): str(v) for k, v in (self.headers or {}).items()})

    def validate(self) -> None:
        if not self.address_prefix or not self.address_prefix.strip():
            raise ValueError("address_prefix is required")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        for name in ("event_loop_pool_size", "worker_pool_size"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValueError(f"{name} must be at least 1")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "EventBusTransportConfig":
        values = {str(key).replace("-", "_"): value for key, value in data.items()}

        def _optional_int(key: str) -> Optional[int]:
            value = values.get(key)
            return None if value is None else int(value)

        return cls(
            address_prefix=str(values.get("address_prefix") or DEFAULT_ADDRESS_PREFIX),
            clustering_enabled=parse_flag(values.get("clustering_enabled", False)),
            cluster_host=values.get("cluster_host"),
            cluster_port=int(values.get("cluster_port", 0)),
            timeout_ms=int(values.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
            headers=dict(values.get("headers") or {}),
            event_loop_pool_size=_optional_int("event_loop_pool_size"),
            worker_pool_size=_optional_int("worker_pool_size"),
        )


class EventBusTransportClient:
    """
    Request/reply implementation of the transport contract on an event bus.

    Parameters
    ----------
    config:
        Optional configuration applied immediately through :meth:`configure`.
    bus:
        Optional pre-built bus. The client does not close buses it did not
        create.
    """

    def __init__(self, config: Optional[EventBusTransportConfig] = None, *, bus: Optional[EventBus] = None) -> None:
        self._external_bus = bus
        self._bus: Optional[EventBus] = None
        self._config: Optional[EventBusTransportConfig] = None
        self._closed = False
        self._lock = threading.Lock()
        self.logger: LoggerAdapter = get_logger(f"{__name__}.{self.__class__.__name__}", extra={"transport": "eventbus"})
        if config is not None:
            self.configure(config)

    @property
    def config_type(self) -> type:
        return EventBusTransportConfig

    @property
    def config(self) -> Optional[EventBusTransportConfig]:
        return self._config

    @property
    def bus(self) -> Optional[EventBus]:
        return self._bus

    def configure(self, config: EventBusTransportConfig) -> None:
        config.validate()
        with self._lock:
            if self._bus is not None:
                raise RuntimeError("EventBusTransportClient is already configured")
            self._bus = self._external_bus or self._create_bus(config)
            self._config = config
        log_event(
            self.logger,
            logging.DEBUG,
            "Event bus transport configured",
            address=config.address_prefix,
            clustered=config.clustering_enabled,
        )

    @staticmethod
    def _pool_sizes(config: EventBusTransportConfig) -> Dict[str, int]:
        sizes: Dict[str, int] = {}
        if config.event_loop_pool_size is not None:
            sizes["event_loop_pool_size"] = config.event_loop_pool_size
        if config.worker_pool_size is not None:
            sizes["worker_pool_size"] = config.worker_pool_size
        return sizes

    def _create_bus(self, config: EventBusTransportConfig) -> EventBus:
        if not config.clustering_enabled:
            return LocalEventBus(**self._pool_sizes(config))
        host = config.cluster_host or "localhost"
        port = config.cluster_port or DEFAULT_CLUSTER_PORT
        bus = RedisEventBus(host, port, **self._pool_sizes(config))
        try:
            bus.connect()
        except redis.RedisError as exc:
            bus.close(0)
            raise TransportError.connection_failure(
                f"Failed to join event bus cluster at {host}:{port}: {exc}",
                exc,
                None,
            ) from exc
        return bus

    def address_for(self, operation: TransportOperation) -> str:
        prefix = self._config.address_prefix if self._config else DEFAULT_ADDRESS_PREFIX
        return bus_address(prefix, operation)

    def shutdown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            bus = self._bus
            owned = bus is not None and bus is not self._external_bus
        if not owned:
            return
        try:
            bus.close(SHUTDOWN_TIMEOUT)
        except Exception:
            self.logger.error("Event bus shutdown failed", exc_info=True)
        else:
            log_event(self.logger, logging.DEBUG, "Event bus closed")

    def __enter__(self) -> "EventBusTransportClient":
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

    def _require_bus(self) -> Tuple[EventBus, EventBusTransportConfig]:
        if self._closed:
            raise RuntimeError("EventBusTransportClient has been shut down")
        if self._bus is None or self._config is None:
            raise RuntimeError("EventBusTransportClient is not configured; call configure() first")
        return self._bus, self._config

    def _invoke(self, request: TransportRequest, binding: OperationBinding, target: Optional[Any]) -> TransportResponse[Any]:
        bus, config = self._require_bus()
        address = bus_address(config.address_prefix, request.operation)
        try:
            payload = binding.request_codec.encode_to_wire(binding.build_request(request))
        except (TypeError, ValueError) as exc:
            raise TransportError.serialization_failure(
                f"Failed to serialise request for '{request.resource_name}': {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc

        slot: ReplySlot[ReplyResult] = ReplySlot()
        options = DeliveryOptions(send_timeout=config.timeout_ms, headers=config.headers)
        started = time.perf_counter()
        try:
            bus.request(address, payload, options, slot.complete)
        except Exception as exc:
            raise self._connection_failure(request, address, f"Event bus dispatch to {address} failed: {exc}", exc) from exc

        try:
            result = slot.wait(config.timeout_ms / 1000.0 + _WAIT_SLACK)
        except TimeoutError as exc:
            raise self._connection_failure(
                request, address, f"No reply from {address} within {config.timeout_ms}ms", exc
            ) from exc
        if not result.succeeded:
            raise self._connection_failure(
                request,
                address,
                f"Event bus request to {address} failed ({result.failure.value}): {result.message}",
                None,
            )

        try:
            reply = binding.response_codec.decode_from_wire(result.body or b"")
            response = binding.to_response(reply, target)
        except (TypeError, ValueError) as exc:
            raise TransportError.serialization_failure(
                f"Failed to decode reply from {address}: {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc
        log_event(
            self.logger,
            logging.DEBUG,
            "Event bus reply",
            operation=request.operation.value,
            resource=request.resource_name,
            address=address,
            status_code=response.status_code,
            success=response.success,
            duration=time.perf_counter() - started,
        )
        return response

    def _connection_failure(
        self,
        request: TransportRequest,
        address: str,
        message: str,
        cause: Optional[BaseException],
    ) -> TransportError:
        log_event(
            self.logger,
            logging.WARNING,
            "Event bus request failed",
            operation=request.operation.value,
            resource=request.resource_name,
            address=address,
            error=message,
        )
        return TransportError.connection_failure(message, cause, request.resource_name, request.operation)

"""
REST adapter built on :mod:`httpx`.

Operations map onto verbs and paths below a configured base URL::

    FIND_BY_ID  GET     /{resource}/{id}
    FIND_ALL    GET     /{resource}
    QUERY       GET     /{resource}?k=v
    COUNT       GET     /{resource}/count
    SAVE        POST    /{resource}          (no identifier)
                PUT     /{resource}/{id}     (identifier present)
    DELETE      DELETE  /{resource}/{id}
    EXISTS      HEAD    /{resource}/{id}

Bodies are JSON. HTTP error statuses come back as non-success responses;
network level failures raise :class:`~remote_transport.transport.errors.TransportError`.
The adapter never retries.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from logging import LoggerAdapter
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote

import httpx

from ..core.logging import get_logger, log_event
from ..transport.base import (
    SINGLE_ENTITY_OPERATIONS,
    ensure_list_operation,
    ensure_single_operation,
    validate_request,
)
from ..transport.errors import TransportError
from ..transport.operation import TransportOperation
from ..transport.request import TransportRequest
from ..transport.response import TransportResponse
from ..transport.serialization import (
    convert_entity,
    decode_entity,
    encode_entity,
    identifier_text,
    stringify_parameters,
)

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 30.0
JSON_CONTENT_TYPE = "application/json"


@dataclass(slots=True)
class RestTransportConfig:
    """
    Settings for :class:`RestTransportClient`.

    Parameters
    ----------
    base_url:
        Root URL of the remote service, e.g. ``https://api.example.com/v1``.
    connect_timeout:
        Seconds allowed for establishing a connection.
    read_timeout:
        Seconds allowed for reading a response.
    default_headers:
        Headers attached to every request. Exposed read-only.
    """

    base_url: str
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    default_headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.default_headers = MappingProxyType({str(k): str(v) for k, v in (self.default_headers or {}).items()})

    def validate(self) -> None:
        if not self.base_url or not str(self.base_url).strip():
            raise ValueError("REST base_url is required")
        if self.connect_timeout <= 0 or self.read_timeout <= 0:
            raise ValueError("REST timeouts must be positive")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RestTransportConfig":
        values = {str(key).replace("-", "_"): value for key, value in data.items()}
        headers = values.get("default_headers") or values.get("headers") or {}
        return cls(
            base_url=str(values.get("base_url") or ""),
            connect_timeout=float(values.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
            read_timeout=float(values.get("read_timeout", DEFAULT_READ_TIMEOUT)),
            default_headers=dict(headers),
        )


class RestTransportClient:
    """
    Blocking HTTP implementation of the transport contract.

    Parameters
    ----------
    config:
        Optional configuration applied immediately through :meth:`configure`.
    transport:
        Optional :class:`httpx.BaseTransport`, typically ``httpx.MockTransport``
        in tests.
    """

    def __init__(
        self,
        config: Optional[RestTransportConfig] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._config: Optional[RestTransportConfig] = None
        self._closed = False
        self._lock = threading.Lock()
        self.logger: LoggerAdapter = get_logger(f"{__name__}.{self.__class__.__name__}", extra={"transport": "rest"})
        if config is not None:
            self.configure(config)

    @property
    def config_type(self) -> type:
        return RestTransportConfig

    @property
    def config(self) -> Optional[RestTransportConfig]:
        return self._config

    def configure(self, config: RestTransportConfig) -> None:
        config.validate()
        with self._lock:
            if self._client is not None:
                raise RuntimeError("RestTransportClient is already configured")
            headers = {"Accept": JSON_CONTENT_TYPE}
            headers.update(config.default_headers)
            self._client = httpx.Client(
                base_url=config.base_url,
                timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
                headers=headers,
                transport=self._transport,
                follow_redirects=True,
            )
            self._config = config
        log_event(self.logger, logging.DEBUG, "REST transport configured", url=config.base_url)

    def shutdown(self) -> None:
        with self._lock:
            if self._closed or self._client is None:
                self._closed = True
                return
            self._closed = True
            client = self._client
        client.close()
        log_event(self.logger, logging.DEBUG, "REST transport closed")

    def __enter__(self) -> "RestTransportClient":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.shutdown()

    # ------------------------------------------------------------------ execution

    def execute(self, request: TransportRequest, response_type: Optional[Any] = None) -> TransportResponse[Any]:
        ensure_single_operation(request, SINGLE_ENTITY_OPERATIONS)
        validate_request(request)
        client = self._require_client()
        method, path = self._route(request)

        content: Optional[bytes] = None
        if request.operation is TransportOperation.SAVE:
            try:
                content = encode_entity(request.payload).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise TransportError.serialization_failure(
                    f"Failed to serialise payload for '{request.resource_name}': {exc}",
                    exc,
                    request.resource_name,
                    request.operation,
                ) from exc

        response = self._send(client, request, method, path, content)

        if request.operation is TransportOperation.EXISTS:
            if response.status_code == 404:
                return TransportResponse.ok(False)
            if response.is_success:
                return TransportResponse.ok(True)
            return self._failure(response)
        if request.operation is TransportOperation.DELETE:
            if response.is_success or response.status_code == 404:
                return TransportResponse.empty()
            return self._failure(response)
        if not response.is_success:
            return self._failure(response)

        target = response_type
        if target is None and request.operation is TransportOperation.COUNT:
            target = int
        body = self._decode(request, response, lambda text: decode_entity(text, target))
        return (
            TransportResponse.builder()
            .status_code(response.status_code)
            .metadata_map(dict(response.headers))
            .body(body)
            .build()
        )

    def execute_for_list(self, request: TransportRequest, element_type: Optional[Any] = None) -> TransportResponse[List[Any]]:
        ensure_list_operation(request)
        client = self._require_client()
        method, path = self._route(request)
        response = self._send(client, request, method, path, None)
        if not response.is_success:
            return self._failure(response)

        def _decode_list(text: str) -> List[Any]:
            data = json.loads(text) if text.strip() else []
            if not isinstance(data, list):
                raise ValueError(f"Expected a JSON array, got {type(data).__name__}")
            return [convert_entity(item, element_type) for item in data]

        items = self._decode(request, response, _decode_list)
        return (
            TransportResponse.builder()
            .status_code(response.status_code)
            .metadata_map(dict(response.headers))
            .body(items)
            .build()
        )

    # ------------------------------------------------------------------ helpers

    def _require_client(self) -> httpx.Client:
        if self._closed:
            raise RuntimeError("RestTransportClient has been shut down")
        if self._client is None:
            raise RuntimeError("RestTransportClient is not configured; call configure() first")
        return self._client

    @staticmethod
    def _route(request: TransportRequest) -> Tuple[str, str]:
        path = "/" + request.resource_name.lstrip("/")
        operation = request.operation
        if request.has_identifier and operation in {
            TransportOperation.FIND_BY_ID,
            TransportOperation.SAVE,
            TransportOperation.DELETE,
            TransportOperation.EXISTS,
        }:
            path = f"{path}/{quote(identifier_text(request.identifier), safe='')}"
        if operation is TransportOperation.COUNT:
            path = f"{path}/count"

        if operation is TransportOperation.SAVE:
            return ("PUT" if request.has_identifier else "POST"), path
        if operation is TransportOperation.DELETE:
            return "DELETE", path
        if operation is TransportOperation.EXISTS:
            return "HEAD", path
        return "GET", path

    def _send(
        self,
        client: httpx.Client,
        request: TransportRequest,
        method: str,
        path: str,
        content: Optional[bytes],
    ) -> httpx.Response:
        params: Optional[Dict[str, str]] = stringify_parameters(request.parameters) or None
        headers = {"Content-Type": JSON_CONTENT_TYPE} if content is not None else None
        started = time.perf_counter()
        try:
            response = client.request(method, path, params=params, content=content, headers=headers)
        except httpx.HTTPError as exc:
            log_event(
                self.logger,
                logging.WARNING,
                "HTTP request failed",
                operation=request.operation.value,
                resource=request.resource_name,
                method=method,
                url=path,
                error=str(exc),
            )
            raise TransportError.connection_failure(
                f"HTTP {method} {path} failed: {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc
        log_event(
            self.logger,
            logging.DEBUG,
            "HTTP response",
            operation=request.operation.value,
            resource=request.resource_name,
            method=method,
            url=str(response.request.url),
            status_code=response.status_code,
            duration=time.perf_counter() - started,
        )
        return response

    @staticmethod
    def _decode(request: TransportRequest, response: httpx.Response, decoder: Any) -> Any:
        try:
            return decoder(response.text)
        except (TypeError, ValueError) as exc:
            raise TransportError.serialization_failure(
                f"Failed to decode response from {response.request.method} {response.request.url}: {exc}",
                exc,
                request.resource_name,
                request.operation,
            ) from exc

    @staticmethod
    def _failure(response: httpx.Response) -> TransportResponse[Any]:
        return TransportResponse.failure(response.status_code, f"{response.reason_phrase}: {response.text}")

"""
Base protocol for transport adapters.

Adapters are intentionally narrow: they translate one request into one remote
call and report the outcome. Retry policies, caching and identifier extraction
belong to higher layers such as :mod:`remote_transport.repository`.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, TypeVar

from .errors import TransportError
from .operation import TransportOperation
from .request import TransportRequest
from .response import TransportResponse

C = TypeVar("C")


class TransportClient(Protocol[C]):
    """Protocol implemented by the REST, gRPC and event-bus adapters."""

    def configure(self, config: C) -> None:
        """Create the adapter's long-lived resource. Call once before the first request."""

    def execute(self, request: TransportRequest, response_type: Optional[Any] = None) -> TransportResponse[Any]:
        """Perform a single-entity operation (find-by-id, save, delete, exists, count)."""

    def execute_for_list(self, request: TransportRequest, element_type: Optional[Any] = None) -> TransportResponse[List[Any]]:
        """Perform a list operation (find-all, query)."""

    def shutdown(self) -> None:
        """Release the long-lived resource. Safe to call more than once."""

    @property
    def config_type(self) -> type:
        """Configuration class accepted by :meth:`configure`."""


def require_identifier(request: TransportRequest) -> Any:
    """Return the request identifier, raising ``ValueError`` when it is absent."""

    if not request.has_identifier:
        raise ValueError(f"Identifier is required for {request.operation.name} on '{request.resource_name}'")
    return request.identifier


def require_payload(request: TransportRequest) -> Any:
    if not request.has_payload:
        raise ValueError(f"Payload is required for {request.operation.name} on '{request.resource_name}'")
    return request.payload


def validate_request(request: TransportRequest) -> None:
    """Reject requests missing the identifier or payload their operation needs."""

    if request.operation.requires_identifier:
        require_identifier(request)
    if request.operation is TransportOperation.SAVE:
        require_payload(request)


def ensure_list_operation(request: TransportRequest) -> None:
    if not request.operation.is_list_operation:
        raise TransportError.unsupported_operation(request.operation, request.resource_name, method="execute_for_list")


def ensure_single_operation(request: TransportRequest, supported: "frozenset[TransportOperation]") -> None:
    if request.operation not in supported:
        raise TransportError.unsupported_operation(request.operation, request.resource_name, method="execute")


SINGLE_ENTITY_OPERATIONS = frozenset(
    {
        TransportOperation.FIND_BY_ID,
        TransportOperation.SAVE,
        TransportOperation.DELETE,
        TransportOperation.EXISTS,
        TransportOperation.COUNT,
    }
)

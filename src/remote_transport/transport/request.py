"""Immutable request value object and its staged builder."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .operation import TransportOperation


@dataclass(frozen=True, slots=True)
class TransportRequest:
    """
    Protocol-agnostic description of a single transport call.

    Attributes
    ----------
    operation:
        Abstract operation to perform.
    resource_name:
        Logical collection name, e.g. ``"users"``. Interpreted as a URL path
        segment, an RPC resource key or part of a bus message.
    entity_type:
        Deserialization target for the response body, if any.
    identifier:
        Opaque entity identifier. Required for single-entity lookups.
    payload:
        Entity to write. Required for :attr:`TransportOperation.SAVE`.
    parameters:
        Filtering or pagination parameters. Exposed read-only.
    """

    operation: TransportOperation
    resource_name: str
    entity_type: Optional[type] = None
    identifier: Optional[Any] = None
    payload: Optional[Any] = field(default=None, hash=False)
    parameters: Mapping[str, Any] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        if self.operation is None:
            raise ValueError("Operation is required")
        if not isinstance(self.operation, TransportOperation):
            raise TypeError(f"Operation must be a TransportOperation, got {type(self.operation).__name__}")
        if self.resource_name is None or not str(self.resource_name).strip():
            raise ValueError("Resource name is required")
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters or {})))

    @property
    def has_identifier(self) -> bool:
        """``False`` when the identifier is absent or an empty string."""

        return self.identifier is not None and self.identifier != ""

    @property
    def has_payload(self) -> bool:
        return self.payload is not None

    @staticmethod
    def builder() -> "RequestBuilder":
        return RequestBuilder()

    def __repr__(self) -> str:
        return (
            f"TransportRequest(operation={self.operation.name}, resource_name={self.resource_name!r}, "
            f"identifier={self.identifier!r}, parameters={dict(self.parameters)!r}, has_payload={self.has_payload})"
        )


class RequestBuilder:
    """Fluent builder; validation happens in :meth:`build`."""

    def __init__(self) -> None:
        self._operation: Optional[TransportOperation] = None
        self._resource_name: Optional[str] = None
        self._entity_type: Optional[type] = None
        self._identifier: Optional[Any] = None
        self._payload: Optional[Any] = None
        self._parameters: Dict[str, Any] = {}

    def operation(self, operation: TransportOperation) -> "RequestBuilder":
        self._operation = operation
        return self

    def resource_name(self, resource_name: str) -> "RequestBuilder":
        self._resource_name = resource_name
        return self

    def entity_type(self, entity_type: Optional[type]) -> "RequestBuilder":
        self._entity_type = entity_type
        return self

    def identifier(self, identifier: Any) -> "RequestBuilder":
        self._identifier = identifier
        return self

    def payload(self, payload: Any) -> "RequestBuilder":
        self._payload = payload
        return self

    def parameter(self, key: str, value: Any) -> "RequestBuilder":
        self._parameters[key] = value
        return self

    def parameters(self, parameters: Mapping[str, Any]) -> "RequestBuilder":
        self._parameters.update(parameters)
        return self

    def build(self) -> TransportRequest:
        return TransportRequest(
            operation=self._operation,  # type: ignore[arg-type]
            resource_name=self._resource_name,  # type: ignore[arg-type]
            entity_type=self._entity_type,
            identifier=self._identifier,
            payload=self._payload,
            parameters=self._parameters,
        )

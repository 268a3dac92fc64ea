"""Immutable, generically typed response value object."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Generic, Mapping, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class TransportResponse(Generic[T]):
    """
    Outcome of a transport call that reached the remote peer.

    Attributes
    ----------
    success:
        ``False`` when the remote end reported a failure.
    status_code:
        Protocol status: HTTP status, RPC status code or the status the bus
        consumer reported.
    body:
        Decoded body, ``None`` when absent.
    error_message:
        Remote failure description. Present only on failures by convention.
    metadata:
        Headers, pagination counts or other string metadata. Exposed read-only.
    """

    success: bool
    status_code: int
    body: Optional[T] = None
    error_message: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata or {})))

    @classmethod
    def ok(cls, body: T) -> "TransportResponse[T]":
        """Successful response carrying ``body`` with status 200."""

        return cls(success=True, status_code=200, body=body)

    @classmethod
    def empty(cls) -> "TransportResponse[T]":
        """Successful response without a body (status 204), used for deletes."""

        return cls(success=True, status_code=204)

    @classmethod
    def failure(cls, status_code: int, error_message: Optional[str]) -> "TransportResponse[T]":
        return cls(success=False, status_code=status_code, error_message=error_message)

    @staticmethod
    def builder() -> "ResponseBuilder":
        return ResponseBuilder()

    def body_or(self, default: T) -> T:
        return default if self.body is None else self.body

    def __repr__(self) -> str:
        return (
            f"TransportResponse(success={self.success}, status_code={self.status_code}, "
            f"has_body={self.body is not None}, error_message={self.error_message!r})"
        )


class ResponseBuilder(Generic[T]):
    """Fluent builder defaulting to a successful 200 response."""

    def __init__(self) -> None:
        self._success = True
        self._status_code = 200
        self._body: Optional[T] = None
        self._error_message: Optional[str] = None
        self._metadata: Dict[str, str] = {}

    def success(self, success: bool) -> "ResponseBuilder[T]":
        self._success = success
        return self

    def status_code(self, status_code: int) -> "ResponseBuilder[T]":
        self._status_code = status_code
        return self

    def body(self, body: Optional[T]) -> "ResponseBuilder[T]":
        self._body = body
        return self

    def error_message(self, error_message: Optional[str]) -> "ResponseBuilder[T]":
        self._error_message = error_message
        return self

    def metadata(self, key: str, value: str) -> "ResponseBuilder[T]":
        self._metadata[key] = value
        return self

    def metadata_map(self, metadata: Mapping[str, str]) -> "ResponseBuilder[T]":
        self._metadata.update(metadata)
        return self

    def build(self) -> TransportResponse[T]:
        return TransportResponse(
            success=self._success,
            status_code=self._status_code,
            body=self._body,
            error_message=self._error_message,
            metadata=self._metadata,
        )

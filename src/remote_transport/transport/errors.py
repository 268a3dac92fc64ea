"""
Error type shared by every transport adapter.

Connection, serialization and unsupported-operation failures are raised as
:class:`TransportError`. Failures reported by the remote peer (HTTP 4xx/5xx,
RPC error status, bus ``success=false``) are *not* raised by adapters; they
come back as non-success :class:`~remote_transport.transport.response.TransportResponse`
objects so callers can branch on the status code.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from .operation import TransportOperation


class ErrorKind(str, Enum):
    """Classification of a raised :class:`TransportError`."""

    CONNECTION = "connection"
    PROTOCOL = "protocol"
    SERIALIZATION = "serialization"
    UNSUPPORTED = "unsupported"


class TransportError(RuntimeError):
    """
    Raised when a transport call cannot produce a response.

    Parameters
    ----------
    message:
        Human-readable description.
    status_code:
        Protocol status when known. ``0`` means no protocol status was
        obtained, e.g. the connection could not be established.
    resource_name:
        Logical collection the failing request targeted.
    operation:
        Operation being executed, ``None`` for generic connection failures.
    kind:
        Failure classification.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        resource_name: Optional[str] = None,
        operation: Optional[TransportOperation] = None,
        *,
        kind: ErrorKind = ErrorKind.PROTOCOL,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_name = resource_name
        self.operation = operation
        self.kind = kind

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_connection_failure(self) -> bool:
        return self.kind is ErrorKind.CONNECTION

    @classmethod
    def connection_failure(
        cls,
        message: str,
        cause: Optional[BaseException],
        resource_name: Optional[str],
        operation: Optional[TransportOperation] = None,
    ) -> "TransportError":
        """Build a status-less error for failures before any reply was obtained."""

        error = cls(message, 0, resource_name, operation, kind=ErrorKind.CONNECTION)
        error.__cause__ = cause
        return error

    @classmethod
    def serialization_failure(
        cls,
        message: str,
        cause: Optional[BaseException],
        resource_name: Optional[str],
        operation: Optional[TransportOperation],
    ) -> "TransportError":
        error = cls(message, 0, resource_name, operation, kind=ErrorKind.SERIALIZATION)
        error.__cause__ = cause
        return error

    @staticmethod
    def unsupported_operation(
        operation: TransportOperation,
        resource_name: Optional[str],
        *,
        method: str,
    ) -> "UnsupportedOperationError":
        return UnsupportedOperationError(
            f"Unsupported operation for {method}: {operation.name}",
            0,
            resource_name,
            operation,
            kind=ErrorKind.UNSUPPORTED,
        )

    def __repr__(self) -> str:
        operation = self.operation.name if self.operation else None
        return (
            f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code}, "
            f"resource_name={self.resource_name!r}, operation={operation}, kind={self.kind.value})"
        )


class UnsupportedOperationError(TransportError, NotImplementedError):
    """Raised immediately when an adapter is asked for an operation it does not implement."""

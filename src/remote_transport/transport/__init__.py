"""
Protocol-agnostic transport model.

The request/response value objects, the error type and the adapter protocol
live here; concrete adapters are in :mod:`remote_transport.adapters`.
"""

from .base import SINGLE_ENTITY_OPERATIONS, TransportClient
from .errors import ErrorKind, TransportError, UnsupportedOperationError
from .operation import TransportOperation
from .request import RequestBuilder, TransportRequest
from .response import ResponseBuilder, TransportResponse

__all__ = [
    "SINGLE_ENTITY_OPERATIONS",
    "TransportClient",
    "ErrorKind",
    "TransportError",
    "UnsupportedOperationError",
    "TransportOperation",
    "RequestBuilder",
    "TransportRequest",
    "ResponseBuilder",
    "TransportResponse",
]

"""
Translation between the transport model and the protobuf wire messages.

The RPC and event-bus adapters share these converters: both send the same
request messages and receive the same response messages, differing only in how
the bytes travel. Response status codes and metadata are passed through
verbatim; entity bodies are decoded only when the remote end reports success.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from google.protobuf.message import Message

from ..transport.errors import TransportError
from ..transport.operation import TransportOperation
from ..transport.request import TransportRequest
from ..transport.response import ResponseBuilder, TransportResponse
from ..transport.serialization import (
    decode_entity,
    decode_entity_list,
    encode_entity,
    identifier_text,
    stringify_parameters,
)
from . import messages
from .codec import ProtobufMessageCodec, codec_for


def _parameters(request: TransportRequest) -> Dict[str, str]:
    return stringify_parameters(request.parameters)


def build_get_by_id_request(request: TransportRequest) -> Message:
    return messages.GetByIdRequest(
        resource_name=request.resource_name,
        id=identifier_text(request.identifier),
        parameters=_parameters(request),
    )


def build_get_all_request(request: TransportRequest) -> Message:
    return messages.GetAllRequest(resource_name=request.resource_name, parameters=_parameters(request))


def build_save_request(request: TransportRequest) -> Message:
    """An empty ``id`` tells the remote end to insert rather than update."""

    return messages.SaveRequest(
        resource_name=request.resource_name,
        id=identifier_text(request.identifier) if request.has_identifier else "",
        entity_json=encode_entity(request.payload),
        parameters=_parameters(request),
    )


def build_delete_request(request: TransportRequest) -> Message:
    return messages.DeleteRequest(
        resource_name=request.resource_name,
        id=identifier_text(request.identifier),
        parameters=_parameters(request),
    )


def build_exists_request(request: TransportRequest) -> Message:
    return messages.ExistsRequest(
        resource_name=request.resource_name,
        id=identifier_text(request.identifier),
        parameters=_parameters(request),
    )


def build_count_request(request: TransportRequest) -> Message:
    return messages.CountRequest(resource_name=request.resource_name, parameters=_parameters(request))


def _response_builder(message: Message) -> ResponseBuilder:
    builder = (
        TransportResponse.builder()
        .success(message.success)
        .status_code(message.status_code)
        .metadata_map(dict(message.metadata))
    )
    if message.error_message:
        builder.error_message(message.error_message)
    return builder


def entity_response(message: Message, target: Optional[Any] = None) -> TransportResponse[Any]:
    builder = _response_builder(message)
    if message.success:
        builder.body(decode_entity(message.entity_json, target))
    return builder.build()


def entity_list_response(message: Message, element_type: Optional[Any] = None) -> TransportResponse[Any]:
    builder = _response_builder(message)
    if message.success:
        builder.body(decode_entity_list(message.entities_json, element_type))
    return builder.build()


def delete_response(message: Message, _target: Optional[Any] = None) -> TransportResponse[Any]:
    return _response_builder(message).build()


def exists_response(message: Message, _target: Optional[Any] = None) -> TransportResponse[Any]:
    builder = _response_builder(message)
    if message.success:
        builder.body(bool(message.exists))
    return builder.build()


def count_response(message: Message, _target: Optional[Any] = None) -> TransportResponse[Any]:
    builder = _response_builder(message)
    if message.success:
        builder.body(int(message.count))
    return builder.build()


@dataclass(frozen=True, slots=True)
class OperationBinding:
    """How one operation maps onto an RPC method, its messages and converters."""

    operation: TransportOperation
    method: str
    request_class: type
    response_class: type
    build_request: Callable[[TransportRequest], Message]
    to_response: Callable[[Message, Optional[Any]], TransportResponse[Any]]

    @property
    def request_codec(self) -> ProtobufMessageCodec:
        return codec_for(self.request_class)

    @property
    def response_codec(self) -> ProtobufMessageCodec:
        return codec_for(self.response_class)


def _binding(operation, method, request_class, response_class, build_request, to_response) -> OperationBinding:
    return OperationBinding(operation, method, request_class, response_class, build_request, to_response)


BINDINGS: Mapping[TransportOperation, OperationBinding] = {
    TransportOperation.FIND_BY_ID: _binding(
        TransportOperation.FIND_BY_ID, "GetById", messages.GetByIdRequest, messages.EntityResponse,
        build_get_by_id_request, entity_response,
    ),
    TransportOperation.FIND_ALL: _binding(
        TransportOperation.FIND_ALL, "GetAll", messages.GetAllRequest, messages.EntityListResponse,
        build_get_all_request, entity_list_response,
    ),
    TransportOperation.QUERY: _binding(
        TransportOperation.QUERY, "GetAll", messages.GetAllRequest, messages.EntityListResponse,
        build_get_all_request, entity_list_response,
    ),
    TransportOperation.SAVE: _binding(
        TransportOperation.SAVE, "Save", messages.SaveRequest, messages.EntityResponse,
        build_save_request, entity_response,
    ),
    TransportOperation.DELETE: _binding(
        TransportOperation.DELETE, "Delete", messages.DeleteRequest, messages.DeleteResponse,
        build_delete_request, delete_response,
    ),
    TransportOperation.EXISTS: _binding(
        TransportOperation.EXISTS, "Exists", messages.ExistsRequest, messages.ExistsResponse,
        build_exists_request, exists_response,
    ),
    TransportOperation.COUNT: _binding(
        TransportOperation.COUNT, "Count", messages.CountRequest, messages.CountResponse,
        build_count_request, count_response,
    ),
}


def binding_for(request: TransportRequest, *, method: str = "execute") -> OperationBinding:
    binding = BINDINGS.get(request.operation)
    if binding is None:
        raise TransportError.unsupported_operation(request.operation, request.resource_name, method=method)
    return binding

"""
Protobuf message classes for the remote data wire contract.

The schema mirrors ``resources/remote_data.proto``. Rather than shipping
``protoc`` output, the file descriptor is assembled at import time and message
classes are obtained from :mod:`google.protobuf.message_factory`. Both sides of
the RPC and event-bus transports must agree on these field numbers.

Entities travel as JSON text (``entity_json`` / ``entities_json``); the schema
only knows resource names, identifiers and string maps.
"""

from __future__ import annotations

from typing import Dict, Mapping, Sequence, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = "remote.data.v1"
SERVICE_NAME = f"{PACKAGE}.RemoteDataService"
PROTO_FILE_NAME = "remote_transport/remote_data.proto"

_FieldProto = descriptor_pb2.FieldDescriptorProto
_SCALAR_TYPES = {
    "string": _FieldProto.TYPE_STRING,
    "bytes": _FieldProto.TYPE_BYTES,
    "bool": _FieldProto.TYPE_BOOL,
    "int32": _FieldProto.TYPE_INT32,
    "int64": _FieldProto.TYPE_INT64,
}

_MESSAGE_FIELDS: Mapping[str, Sequence[Tuple[str, int, str]]] = {
    "GetByIdRequest": (("resource_name", 1, "string"), ("id", 2, "string"), ("parameters", 3, "map")),
    "GetAllRequest": (("resource_name", 1, "string"), ("parameters", 2, "map")),
    "SaveRequest": (("resource_name", 1, "string"), ("id", 2, "string"), ("entity_json", 3, "string"), ("parameters", 4, "map")),
    "DeleteRequest": (("resource_name", 1, "string"), ("id", 2, "string"), ("parameters", 3, "map")),
    "ExistsRequest": (("resource_name", 1, "string"), ("id", 2, "string"), ("parameters", 3, "map")),
    "CountRequest": (("resource_name", 1, "string"), ("parameters", 2, "map")),
    "EntityResponse": (
        ("success", 1, "bool"),
        ("status_code", 2, "int32"),
        ("entity_json", 3, "string"),
        ("error_message", 4, "string"),
        ("metadata", 5, "map"),
    ),
    "EntityListResponse": (
        ("success", 1, "bool"),
        ("status_code", 2, "int32"),
        ("entities_json", 3, "repeated string"),
        ("error_message", 4, "string"),
        ("metadata", 5, "map"),
    ),
    "DeleteResponse": (
        ("success", 1, "bool"),
        ("status_code", 2, "int32"),
        ("error_message", 3, "string"),
        ("metadata", 4, "map"),
    ),
    "ExistsResponse": (
        ("success", 1, "bool"),
        ("status_code", 2, "int32"),
        ("exists", 3, "bool"),
        ("error_message", 4, "string"),
        ("metadata", 5, "map"),
    ),
    "CountResponse": (
        ("success", 1, "bool"),
        ("status_code", 2, "int32"),
        ("count", 3, "int64"),
        ("error_message", 4, "string"),
        ("metadata", 5, "map"),
    ),
    # Event-bus framing, independent of the request/response payloads above.
    "BusEnvelope": (
        ("address", 1, "string"),
        ("reply_address", 2, "string"),
        ("correlation_id", 3, "string"),
        ("headers", 4, "map"),
        ("body", 5, "bytes"),
        ("failure_code", 6, "int32"),
        ("failure_message", 7, "string"),
    ),
}

# RPC method name -> (request message, response message)
SERVICE_METHODS: Mapping[str, Tuple[str, str]] = {
    "GetById": ("GetByIdRequest", "EntityResponse"),
    "GetAll": ("GetAllRequest", "EntityListResponse"),
    "Save": ("SaveRequest", "EntityResponse"),
    "Delete": ("DeleteRequest", "DeleteResponse"),
    "Exists": ("ExistsRequest", "ExistsResponse"),
    "Count": ("CountRequest", "CountResponse"),
}


def _entry_name(field_name: str) -> str:
    return "".join(part.capitalize() for part in field_name.split("_")) + "Entry"


def _add_field(message: descriptor_pb2.DescriptorProto, name: str, number: int, kind: str) -> None:
    if kind == "map":
        entry = message.nested_type.add(name=_entry_name(name))
        entry.options.map_entry = True
        entry.field.add(name="key", number=1, type=_FieldProto.TYPE_STRING, label=_FieldProto.LABEL_OPTIONAL)
        entry.field.add(name="value", number=2, type=_FieldProto.TYPE_STRING, label=_FieldProto.LABEL_OPTIONAL)
        message.field.add(
            name=name,
            number=number,
            type=_FieldProto.TYPE_MESSAGE,
            label=_FieldProto.LABEL_REPEATED,
            type_name=f".{PACKAGE}.{message.name}.{entry.name}",
        )
        return
    repeated = kind.startswith("repeated ")
    scalar = kind.split(" ")[-1]
    message.field.add(
        name=name,
        number=number,
        type=_SCALAR_TYPES[scalar],
        label=_FieldProto.LABEL_REPEATED if repeated else _FieldProto.LABEL_OPTIONAL,
    )


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """Assemble the ``FileDescriptorProto`` equivalent to ``remote_data.proto``."""

    file_proto = descriptor_pb2.FileDescriptorProto(name=PROTO_FILE_NAME, package=PACKAGE, syntax="proto3")
    for message_name, fields in _MESSAGE_FIELDS.items():
        message = file_proto.message_type.add(name=message_name)
        for name, number, kind in fields:
            _add_field(message, name, number, kind)
    service = file_proto.service.add(name=SERVICE_NAME.rsplit(".", 1)[-1])
    for method_name, (input_name, output_name) in SERVICE_METHODS.items():
        service.method.add(
            name=method_name,
            input_type=f".{PACKAGE}.{input_name}",
            output_type=f".{PACKAGE}.{output_name}",
        )
    return file_proto


_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(build_file_descriptor().SerializeToString())
FILE_DESCRIPTOR = _POOL.FindFileByName(PROTO_FILE_NAME)


def _message_class(name: str) -> type:
    return message_factory.GetMessageClass(FILE_DESCRIPTOR.message_types_by_name[name])


GetByIdRequest = _message_class("GetByIdRequest")
GetAllRequest = _message_class("GetAllRequest")
SaveRequest = _message_class("SaveRequest")
DeleteRequest = _message_class("DeleteRequest")
ExistsRequest = _message_class("ExistsRequest")
CountRequest = _message_class("CountRequest")
EntityResponse = _message_class("EntityResponse")
EntityListResponse = _message_class("EntityListResponse")
DeleteResponse = _message_class("DeleteResponse")
ExistsResponse = _message_class("ExistsResponse")
CountResponse = _message_class("CountResponse")
BusEnvelope = _message_class("BusEnvelope")

MESSAGE_CLASSES: Dict[str, type] = {name: globals()[name] for name in _MESSAGE_FIELDS}

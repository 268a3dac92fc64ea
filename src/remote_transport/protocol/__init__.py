"""Protobuf wire contract shared by the RPC and event-bus adapters."""

from .codec import CodecError, ProtobufMessageCodec, codec_for
from .converters import BINDINGS, OperationBinding, binding_for
from .messages import PACKAGE, SERVICE_METHODS, SERVICE_NAME

__all__ = [
    "BINDINGS",
    "CodecError",
    "OperationBinding",
    "PACKAGE",
    "ProtobufMessageCodec",
    "SERVICE_METHODS",
    "SERVICE_NAME",
    "binding_for",
    "codec_for",
]

"""Length-prefixed protobuf framing used on the event bus."""

from __future__ import annotations

import struct
from typing import Dict, Generic, Optional, TypeVar, Union

from google.protobuf.message import DecodeError, Message

from .messages import MESSAGE_CLASSES

M = TypeVar("M", bound=Message)

_HEADER = struct.Struct(">I")


class CodecError(ValueError):
    """Raised when a frame is truncated or its body is not a valid message."""


class ProtobufMessageCodec(Generic[M]):
    """
    Encode and decode one protobuf message type as ``uint32 length || bytes``.

    The length is big-endian and counts only the message bytes. Decoding reads
    exactly one frame starting at ``position`` and ignores trailing bytes.
    """

    def __init__(self, message_class: type, name: Optional[str] = None) -> None:
        self._message_class = message_class
        self._name = name or f"{message_class.DESCRIPTOR.name}Codec"

    @property
    def name(self) -> str:
        return self._name

    @property
    def message_class(self) -> type:
        return self._message_class

    def encode_to_wire(self, message: M) -> bytes:
        if not isinstance(message, self._message_class):
            raise CodecError(f"{self._name} cannot encode {type(message).__name__}")
        body = message.SerializeToString()
        return _HEADER.pack(len(body)) + body

    def decode_from_wire(self, buffer: Union[bytes, bytearray, memoryview], position: int = 0) -> M:
        available = len(buffer) - position
        if position < 0 or available < _HEADER.size:
            raise CodecError(f"{self._name}: truncated frame header at position {position}")
        (length,) = _HEADER.unpack_from(buffer, position)
        start = position + _HEADER.size
        end = start + length
        if end > len(buffer):
            raise CodecError(f"{self._name}: frame declares {length} bytes but only {len(buffer) - start} remain")
        message = self._message_class()
        try:
            message.ParseFromString(bytes(buffer[start:end]))
        except DecodeError as exc:
            raise CodecError(f"{self._name}: invalid message body: {exc}") from exc
        return message

    def __repr__(self) -> str:
        return f"ProtobufMessageCodec(name={self._name!r})"


_CODECS: Dict[str, ProtobufMessageCodec] = {name: ProtobufMessageCodec(cls) for name, cls in MESSAGE_CLASSES.items()}


def codec_for(message_class: type) -> ProtobufMessageCodec:
    """Return the shared codec registered for ``message_class``."""

    try:
        return _CODECS[message_class.DESCRIPTOR.name]
    except (AttributeError, KeyError) as exc:
        raise KeyError(f"No codec registered for {message_class!r}") from exc

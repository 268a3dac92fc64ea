"""
JSON helpers shared by every adapter.

Entities cross all three transports as JSON text: as the HTTP body for the
REST adapter, and as opaque ``entity_json`` fields embedded inside protobuf
messages for the RPC and event-bus adapters. Entity shape is never known to the
wire schema.

Decoding targets follow a small set of conventions:

* ``None``/``object``/``typing.Any`` return the decoded JSON value untouched.
* ``bool``, ``int``, ``float`` and ``str`` are coerced from scalars.
* Dataclasses are rebuilt field by field, recursing into nested dataclasses
  and lists of dataclasses.
* Classes exposing ``model_validate`` or ``from_dict`` are delegated to.

Helpers raise :class:`TypeError` or :class:`ValueError`; adapters convert those
into serialization :class:`~remote_transport.transport.errors.TransportError`.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import json
import types
import typing
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID


def to_jsonable(value: Any) -> Any:
    """Convert ``value`` into plain JSON-compatible Python structures."""

    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Enum):
        return to_jsonable(value.value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {item.name: to_jsonable(getattr(value, item.name)) for item in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    for hook in ("model_dump", "to_dict"):
        method = getattr(value, hook, None)
        if callable(method):
            return to_jsonable(method())
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serialisable")


def encode_entity(payload: Any) -> str:
    """Serialise ``payload`` to compact JSON text."""

    return json.dumps(to_jsonable(payload), ensure_ascii=False, separators=(",", ":"))


def decode_entity(text: Optional[str], target: Optional[Any] = None) -> Any:
    """
    Parse JSON ``text`` and convert it to ``target``.

    Blank text decodes to ``None`` regardless of the target.
    """

    if text is None or not text.strip():
        return None
    return convert_entity(json.loads(text), target)


def decode_entity_list(texts: typing.Iterable[str], element_type: Optional[Any] = None) -> List[Any]:
    return [decode_entity(text, element_type) for text in texts]


def convert_entity(data: Any, target: Optional[Any] = None) -> Any:
    """Convert already-decoded JSON ``data`` into an instance of ``target``."""

    if data is None or target is None or target is Any or target is object:
        return data

    origin = typing.get_origin(target)
    if origin is not None:
        return _convert_generic(data, target, origin)

    if target is bool:
        if isinstance(data, bool):
            return data
        if isinstance(data, str) and data.strip().lower() in {"true", "false"}:
            return data.strip().lower() == "true"
        raise ValueError(f"Cannot convert {data!r} to bool")
    if target is int:
        return _to_int(data)
    if target is float:
        if isinstance(data, bool) or not isinstance(data, (int, float)):
            raise ValueError(f"Cannot convert {data!r} to float")
        return float(data)
    if target is str:
        if not isinstance(data, str):
            raise ValueError(f"Expected JSON string, got {type(data).__name__}")
        return data
    if target in (dict, list):
        if not isinstance(data, target):
            raise ValueError(f"Expected JSON {target.__name__}, got {type(data).__name__}")
        return data
    if isinstance(target, type) and dataclasses.is_dataclass(target):
        return _build_dataclass(data, target)
    for hook in ("model_validate", "from_dict"):
        factory = getattr(target, hook, None)
        if callable(factory):
            return factory(data)
    if isinstance(target, type) and isinstance(data, target):
        return data
    raise TypeError(f"Unsupported deserialization target: {target!r}")


def _to_int(data: Any) -> int:
    if isinstance(data, bool):
        raise ValueError(f"Cannot convert {data!r} to int")
    if isinstance(data, int):
        return data
    if isinstance(data, float):
        if not data.is_integer():
            raise ValueError(f"Cannot convert {data!r} to int without truncation")
        return int(data)
    if isinstance(data, str):
        return int(data.strip())
    raise ValueError(f"Cannot convert {type(data).__name__} to int")


def parse_flag(value: Any) -> bool:
    """Read a boolean setting; accepts booleans, ``0``/``1`` and the usual on/off words."""

    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off", ""}:
            return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


def _convert_generic(data: Any, target: Any, origin: Any) -> Any:
    args = typing.get_args(target)
    if origin is typing.Union or origin is types.UnionType:
        candidates = [arg for arg in args if arg is not type(None)]
        return convert_entity(data, candidates[0]) if len(candidates) == 1 else data
    if origin in (list, tuple, set, frozenset):
        if not isinstance(data, list):
            raise ValueError(f"Expected JSON array for {target!r}")
        inner = args[0] if args else None
        return origin(convert_entity(item, inner) for item in data)
    if origin in (dict, collections.abc.Mapping):
        if not isinstance(data, dict):
            raise ValueError(f"Expected JSON object for {target!r}")
        inner = args[1] if len(args) == 2 else None
        return {key: convert_entity(value, inner) for key, value in data.items()}
    return data


def _build_dataclass(data: Any, target: type) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object for {target.__name__}, got {type(data).__name__}")
    try:
        hints = typing.get_type_hints(target)
    except (NameError, TypeError):
        hints = {}
    kwargs: Dict[str, Any] = {}
    for item in dataclasses.fields(target):
        if not item.init or item.name not in data:
            continue
        kwargs[item.name] = _convert_field(data[item.name], hints.get(item.name))
    return target(**kwargs)


def _convert_field(value: Any, hint: Optional[Any]) -> Any:
    if hint is None or value is None:
        return value
    origin = typing.get_origin(hint)
    if isinstance(hint, type) and dataclasses.is_dataclass(hint):
        return _build_dataclass(value, hint)
    if origin is not None and any(isinstance(arg, type) and dataclasses.is_dataclass(arg) for arg in typing.get_args(hint)):
        return _convert_generic(value, hint, origin)
    return value


def stringify_parameters(parameters: Mapping[str, Any]) -> Dict[str, str]:
    """Coerce parameter values to their text form; ``None`` becomes ``""``."""

    return {str(key): "" if value is None else _text(value) for key, value in parameters.items()}


def identifier_text(identifier: Any) -> str:
    """Text form of an opaque identifier as carried by RPC and bus messages."""

    return "" if identifier is None else _text(identifier)


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)

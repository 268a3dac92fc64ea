"""
Centralised logging helpers for the remote transport layer.

Adapters obtain loggers via :func:`get_logger` so every transport call is
reported with the same structured ``key=value`` suffix (transport, operation,
resource, status code, duration). Configuration is deterministic and driven by
``REMOTE_TRANSPORT_LOG_LEVEL`` / ``REMOTE_TRANSPORT_LOG_COLOR`` unless callers
pass explicit values.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from copy import copy
from functools import lru_cache
from logging import Logger, LoggerAdapter
from typing import Any, Iterable, Mapping, MutableMapping, Optional, Sequence

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LEVEL = "WARNING"
_ENV_LEVEL = "REMOTE_TRANSPORT_LOG_LEVEL"
_ENV_COLOR = "REMOTE_TRANSPORT_LOG_COLOR"
_EXTRA_FOCUS_ORDER: Sequence[str] = (
    "transport",
    "operation",
    "resource",
    "method",
    "url",
    "address",
    "status_code",
    "success",
    "duration",
    "error",
    "tags",
)

_LEVEL_STYLES = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[95m",
}
_RESET = "\033[0m"

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "asctime",
    "taskName",
}


def _resolve_level(level: Optional[int | str]) -> int:
    if isinstance(level, int):
        return level
    candidate = (level or os.getenv(_ENV_LEVEL) or DEFAULT_LEVEL).upper()
    resolved = logging.getLevelName(candidate)
    return resolved if isinstance(resolved, int) else logging.WARNING


def _coerce_bool(value: str) -> Optional[bool]:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on", "enabled"}:
        return True
    if lowered in {"0", "false", "no", "off", "disabled"}:
        return False
    return None


def _supports_color(stream: Any) -> bool:
    preference = os.getenv(_ENV_COLOR)
    if preference:
        resolved = _coerce_bool(preference)
        if resolved is not None:
            return resolved
    return hasattr(stream, "isatty") and bool(stream.isatty())


def _iter_extras(record: logging.LogRecord) -> Iterable[tuple[str, Any]]:
    payload = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS and not key.startswith("_") and value is not None}

    for key in _EXTRA_FOCUS_ORDER:
        if key in payload:
            yield key, payload.pop(key)

    for key in sorted(payload):
        yield key, payload[key]


def _format_extra_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return "[" + ", ".join(_format_extra_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        try:
            return json.dumps(value, ensure_ascii=False, default=str)
        except TypeError:
            return repr(dict(value))
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """Formatter that appends structured extras and supports optional colour output."""

    def __init__(self, *, use_color: bool = False) -> None:
        super().__init__(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        working = copy(record)
        if self.use_color:
            style = _LEVEL_STYLES.get(working.levelname)
            if style:
                working.levelname = f"{style}{working.levelname}{_RESET}"
        base = super().format(working)
        extras = " ".join(f"{key}={_format_extra_value(value)}" for key, value in _iter_extras(record))
        if extras:
            return f"{base} | {extras}"
        return base


@lru_cache(maxsize=1)
def _base_logger_configured() -> bool:
    return False


def _build_handler(level: Optional[int | str]) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(_resolve_level(level))
    handler.setFormatter(StructuredLogFormatter(use_color=_supports_color(handler.stream)))
    return handler


def configure_logging(level: Optional[int | str] = None, *, force: bool = False) -> None:
    """
    Configure root logging handlers unless already initialised.

    Parameters
    ----------
    level:
        Optional logging level override. Falls back to ``REMOTE_TRANSPORT_LOG_LEVEL``
        or ``WARNING``.
    force:
        When ``True`` the configuration is reapplied even if previously initialised.
    """

    if force or _base_logger_configured.cache_info().currsize == 0:
        handler = _build_handler(level)
        logging.basicConfig(level=_resolve_level(level), handlers=[handler], force=force)
        _base_logger_configured.cache_clear()
        _base_logger_configured()


def get_logger(
    name: str,
    *,
    level: Optional[int | str] = None,
    tags: Optional[Sequence[str]] = None,
    extra: Optional[Mapping[str, object]] = None,
) -> LoggerAdapter:
    """
    Return a :class:`logging.LoggerAdapter` carrying static structured context.

    Parameters
    ----------
    name:
        Logger namespace, typically ``__name__`` or the adapter class path.
    level:
        Optional per-logger level override.
    tags:
        Optional observability tags attached to the ``extra`` payload.
    extra:
        Additional structured metadata recorded with each log entry, e.g.
        ``{"transport": "rest"}``.
    """

    base: Logger = logging.getLogger(name)
    if level is not None:
        base.setLevel(_resolve_level(level))
    payload: MutableMapping[str, object] = {}
    if tags:
        payload["tags"] = tuple(tags)
    if extra:
        payload.update({key: value for key, value in extra.items() if value is not None})
    return LoggerAdapter(base, payload)


def log_event(
    logger: LoggerAdapter | Logger,
    level: int,
    message: str,
    **fields: object,
) -> None:
    """
    Emit ``message`` with the adapter's static context merged with ``fields``.

    :class:`logging.LoggerAdapter` replaces per-call ``extra`` with its own
    payload, so the two are merged here before reaching the underlying logger.
    """

    payload: MutableMapping[str, object] = {}
    target = logger
    if isinstance(logger, LoggerAdapter):
        if isinstance(logger.extra, Mapping):
            payload.update(logger.extra)
        target = logger.logger
    payload.update({key: value for key, value in fields.items() if value is not None})
    target.log(level, message, extra=dict(payload) if payload else None)

"""
Event-bus primitives and the in-process bus.

A bus delivers a request body to one consumer registered at an address and
routes that consumer's answer back to the sender's reply handler. The reply
handler runs exactly once, with either the reply body or a
:class:`ReplyFailure`. Sending never blocks; :class:`ReplySlot` turns the
callback back into a blocking wait for the transport adapter.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Generic, List, Mapping, Optional, Protocol, TypeVar

from ...core.logging import get_logger, log_event

LOGGER = get_logger(__name__, extra={"transport": "eventbus"})

T = TypeVar("T")

DEFAULT_SEND_TIMEOUT_MS = 30_000


class ReplyFailure(str, Enum):
    TIMEOUT = "timeout"
    NO_HANDLERS = "no-handlers"
    RECIPIENT_FAILURE = "recipient-failure"


@dataclass(frozen=True, slots=True)
class DeliveryOptions:
    """Per-send options: reply timeout in milliseconds and string headers."""

    send_timeout: int = DEFAULT_SEND_TIMEOUT_MS
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers or {})))


@dataclass(frozen=True, slots=True)
class ReplyResult:
    """Outcome handed to a reply handler: a body, or a failure with its code and message."""

    body: Optional[bytes] = None
    failure: Optional[ReplyFailure] = None
    failure_code: int = 0
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.failure is None

    @classmethod
    def of(cls, body: bytes) -> "ReplyResult":
        return cls(body=body)

    @classmethod
    def failed(cls, failure: ReplyFailure, message: str, code: int = -1) -> "ReplyResult":
        return cls(failure=failure, failure_code=code, message=message)


ReplyHandler = Callable[[ReplyResult], None]


class BusMessage:
    """A request delivered to a consumer. Answer it once with :meth:`reply` or :meth:`fail`."""

    def __init__(
        self,
        address: str,
        body: bytes,
        headers: Mapping[str, str],
        responder: ReplyHandler,
    ) -> None:
        self.address = address
        self.body = body
        self.headers: Mapping[str, str] = MappingProxyType(dict(headers))
        self._responder = responder

    def reply(self, body: bytes) -> None:
        self._responder(ReplyResult.of(body))

    def fail(self, code: int, message: str) -> None:
        self._responder(ReplyResult.failed(ReplyFailure.RECIPIENT_FAILURE, message, code))

    def __repr__(self) -> str:
        return f"BusMessage(address={self.address!r}, size={len(self.body)})"


ConsumerHandler = Callable[[BusMessage], None]


class Registration(Protocol):
    @property
    def address(self) -> str:
        """Address the consumer listens on."""

    def unregister(self) -> None:
        """Stop receiving messages. Safe to call more than once."""


class EventBus(Protocol):
    """Protocol implemented by :class:`LocalEventBus` and the Redis-backed bus."""

    def request(self, address: str, body: bytes, options: DeliveryOptions, handler: ReplyHandler) -> None:
        """Send ``body`` to one consumer of ``address``; ``handler`` receives the outcome once."""

    def consumer(self, address: str, handler: ConsumerHandler) -> Registration:
        """Register ``handler`` for messages sent to ``address``."""

    def close(self, timeout: float = 10.0) -> None:
        """Stop the bus, waiting up to ``timeout`` seconds for in-flight work."""


class ReplySlot(Generic[T]):
    """
    Single-resolution future.

    The first of :meth:`complete` or :meth:`fail` wins; later calls return
    ``False`` and change nothing.
    """

    def __init__(self) -> None:
        self._future: Future = Future()
        self._lock = threading.Lock()

    @property
    def done(self) -> bool:
        return self._future.done()

    def complete(self, value: T) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(value)
            return True

    def fail(self, error: BaseException) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_exception(error)
            return True

    def wait(self, timeout: Optional[float]) -> T:
        """Block up to ``timeout`` seconds. Raises :class:`TimeoutError` if unresolved."""

        return self._future.result(timeout=timeout)


class ReplyResolution:
    """Guards a reply handler so it runs once, on the delivery pool when it is still open."""

    def __init__(self, handler: ReplyHandler, executor: ThreadPoolExecutor) -> None:
        self._handler = handler
        self._executor = executor
        self._lock = threading.Lock()
        self._resolved = False
        self.timer: Optional[threading.Timer] = None

    def resolve(self, result: ReplyResult) -> bool:
        with self._lock:
            if self._resolved:
                return False
            self._resolved = True
            timer = self.timer
        if timer is not None:
            timer.cancel()
        try:
            self._executor.submit(self._handler, result)
        except RuntimeError:
            # delivery pool already shut down
            self._handler(result)
        return True


@dataclass(slots=True, eq=False)
class _LocalRegistration:
    address: str
    handler: ConsumerHandler
    bus: "LocalEventBus"
    active: bool = True

    def unregister(self) -> None:
        if self.active:
            self.active = False
            self.bus._remove(self)


class LocalEventBus:
    """
    In-process event bus.

    Requests go point-to-point to one consumer per address, chosen round-robin.
    Consumers run on a worker pool and reply handlers on a separate delivery
    pool, so a consumer may block without stalling replies.
    """

    def __init__(self, *, event_loop_pool_size: int = 2, worker_pool_size: int = 8, name: str = "eventbus") -> None:
        self._delivery = ThreadPoolExecutor(max_workers=max(1, event_loop_pool_size), thread_name_prefix=f"{name}-delivery")
        self._workers = ThreadPoolExecutor(max_workers=max(1, worker_pool_size), thread_name_prefix=f"{name}-worker")
        self._consumers: Dict[str, List[_LocalRegistration]] = {}
        self._cursors: Dict[str, itertools.count] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def consumer(self, address: str, handler: ConsumerHandler) -> _LocalRegistration:
        registration = _LocalRegistration(address, handler, self)
        with self._lock:
            if self._closed:
                raise RuntimeError("Event bus is closed")
            self._consumers.setdefault(address, []).append(registration)
            self._cursors.setdefault(address, itertools.count())
        log_event(LOGGER, logging.DEBUG, "Consumer registered", address=address)
        return registration

    def _remove(self, registration: _LocalRegistration) -> None:
        with self._lock:
            consumers = self._consumers.get(registration.address, [])
            if registration in consumers:
                consumers.remove(registration)
            if not consumers:
                self._consumers.pop(registration.address, None)
                self._cursors.pop(registration.address, None)

    def request(self, address: str, body: bytes, options: DeliveryOptions, handler: ReplyHandler) -> None:
        resolution = ReplyResolution(handler, self._delivery)
        with self._lock:
            if self._closed:
                raise RuntimeError("Event bus is closed")
            consumers = self._consumers.get(address)
            target = consumers[next(self._cursors[address]) % len(consumers)] if consumers else None

        if target is None:
            resolution.resolve(ReplyResult.failed(ReplyFailure.NO_HANDLERS, f"No handlers for address {address}"))
            return

        if options.send_timeout > 0:
            timer = threading.Timer(
                options.send_timeout / 1000.0,
                resolution.resolve,
                args=(ReplyResult.failed(ReplyFailure.TIMEOUT, f"Timed out after waiting {options.send_timeout}(ms) for a reply. address: {address}"),),
            )
            timer.daemon = True
            resolution.timer = timer
            timer.start()

        message = BusMessage(address, body, options.headers, resolution.resolve)
        self._workers.submit(self._deliver, target, message)

    @staticmethod
    def _deliver(registration: _LocalRegistration, message: BusMessage) -> None:
        try:
            registration.handler(message)
        except Exception as exc:
            log_event(LOGGER, logging.WARNING, "Consumer raised", address=message.address, error=str(exc))
            message.fail(-1, str(exc) or exc.__class__.__name__)

    def close(self, timeout: float = 10.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._consumers.clear()
            self._cursors.clear()
        for executor in (self._workers, self._delivery):
            executor.shutdown(wait=False, cancel_futures=True)
        waiter = threading.Thread(target=self._join_pools, name="eventbus-close", daemon=True)
        waiter.start()
        waiter.join(timeout)
        if waiter.is_alive():
            raise TimeoutError(f"Event bus did not stop within {timeout}s")

    def _join_pools(self) -> None:
        self._workers.shutdown(wait=True)
        self._delivery.shutdown(wait=True)


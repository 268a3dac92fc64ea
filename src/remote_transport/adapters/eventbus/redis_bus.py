"""
Clustered event bus over Redis pub/sub.

Every node subscribes to a private reply channel. A request is published as a
:data:`~remote_transport.protocol.messages.BusEnvelope` on the channel for its
address; the consumer publishes its answer, tagged with the same correlation
id, on the sender's reply channel. A publish that reaches no subscriber fails
immediately with :attr:`ReplyFailure.NO_HANDLERS`.

Pub/sub fans out to every subscriber of an address, so with several consumers
on one address the first reply wins and the rest are dropped.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import redis
from google.protobuf.message import DecodeError

from ...core.logging import get_logger, log_event
from ...protocol.messages import BusEnvelope
from .bus import BusMessage, ConsumerHandler, DeliveryOptions, ReplyFailure, ReplyHandler, ReplyResult, ReplyResolution

LOGGER = get_logger(__name__, extra={"transport": "eventbus"})

DEFAULT_CHANNEL_PREFIX = "eventbus"
_POLL_INTERVAL = 0.05


@dataclass(slots=True, eq=False)
class RedisRegistration:
    address: str
    pubsub: Any
    worker: Any
    active: bool = True

    def unregister(self) -> None:
        if not self.active:
            return
        self.active = False
        self.worker.stop()


class RedisEventBus:
    """
    Event bus whose nodes meet on a shared Redis server.

    Parameters
    ----------
    host, port:
        Redis server location. Ignored when ``client`` is given.
    client:
        Optional pre-built :class:`redis.Redis` client (must not decode responses).
    node_id:
        Name of this node's reply channel. Random by default.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        *,
        client: Optional[redis.Redis] = None,
        node_id: Optional[str] = None,
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
        event_loop_pool_size: int = 2,
        worker_pool_size: int = 8,
    ) -> None:
        self._client = client or redis.Redis(host=host, port=port, socket_connect_timeout=2)
        self._prefix = channel_prefix
        self._node_id = node_id or uuid.uuid4().hex
        self._reply_channel = f"{channel_prefix}:reply:{self._node_id}"
        self._delivery = ThreadPoolExecutor(max_workers=max(1, event_loop_pool_size), thread_name_prefix="redis-bus-delivery")
        self._workers = ThreadPoolExecutor(max_workers=max(1, worker_pool_size), thread_name_prefix="redis-bus-worker")
        self._pending: Dict[str, ReplyResolution] = {}
        self._registrations: List[RedisRegistration] = []
        self._reply_worker: Any = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def reply_channel(self) -> str:
        return self._reply_channel

    def channel_for(self, address: str) -> str:
        return f"{self._prefix}:{address}"

    def connect(self) -> None:
        """Ping the server and start listening on the reply channel."""

        self._client.ping()
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self._reply_channel: self._on_reply})
        self._reply_worker = pubsub.run_in_thread(sleep_time=_POLL_INTERVAL, daemon=True)
        log_event(LOGGER, logging.DEBUG, "Redis event bus connected", address=self._reply_channel)

    # ------------------------------------------------------------------ sending

    def request(self, address: str, body: bytes, options: DeliveryOptions, handler: ReplyHandler) -> None:
        if self._closed:
            raise RuntimeError("Event bus is closed")
        correlation_id = uuid.uuid4().hex
        resolution = ReplyResolution(handler, self._delivery)
        with self._lock:
            self._pending[correlation_id] = resolution

        if options.send_timeout > 0:
            timer = threading.Timer(options.send_timeout / 1000.0, self._expire, args=(correlation_id, address, options.send_timeout))
            timer.daemon = True
            resolution.timer = timer
            timer.start()

        envelope = BusEnvelope(
            address=address,
            reply_address=self._reply_channel,
            correlation_id=correlation_id,
            headers=dict(options.headers),
            body=body,
        )
        try:
            receivers = self._client.publish(self.channel_for(address), envelope.SerializeToString())
        except redis.RedisError:
            self._take(correlation_id)
            if resolution.timer is not None:
                resolution.timer.cancel()
            raise
        if not receivers:
            taken = self._take(correlation_id)
            if taken is not None:
                taken.resolve(ReplyResult.failed(ReplyFailure.NO_HANDLERS, f"No handlers for address {address}"))

    def _take(self, correlation_id: str) -> Optional[ReplyResolution]:
        with self._lock:
            return self._pending.pop(correlation_id, None)

    def _expire(self, correlation_id: str, address: str, timeout_ms: int) -> None:
        resolution = self._take(correlation_id)
        if resolution is not None:
            resolution.resolve(
                ReplyResult.failed(ReplyFailure.TIMEOUT, f"Timed out after waiting {timeout_ms}(ms) for a reply. address: {address}")
            )

    def _on_reply(self, raw: Mapping[str, Any]) -> None:
        envelope = self._parse(raw)
        if envelope is None:
            return
        resolution = self._take(envelope.correlation_id)
        if resolution is None:
            return
        if envelope.failure_message or envelope.failure_code:
            resolution.resolve(
                ReplyResult.failed(ReplyFailure.RECIPIENT_FAILURE, envelope.failure_message, envelope.failure_code)
            )
        else:
            resolution.resolve(ReplyResult.of(envelope.body))

    # ------------------------------------------------------------------ consuming

    def consumer(self, address: str, handler: ConsumerHandler) -> RedisRegistration:
        if self._closed:
            raise RuntimeError("Event bus is closed")

        def _dispatch(raw: Mapping[str, Any]) -> None:
            self._workers.submit(self._on_request, handler, raw)

        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        pubsub.subscribe(**{self.channel_for(address): _dispatch})
        worker = pubsub.run_in_thread(sleep_time=_POLL_INTERVAL, daemon=True)
        registration = RedisRegistration(address, pubsub, worker)
        with self._lock:
            self._registrations.append(registration)
        log_event(LOGGER, logging.DEBUG, "Consumer registered", address=address)
        return registration

    def _on_request(self, handler: ConsumerHandler, raw: Mapping[str, Any]) -> None:
        envelope = self._parse(raw)
        if envelope is None:
            return
        answered = threading.Event()

        def _respond(result: ReplyResult) -> None:
            if answered.is_set():
                return
            answered.set()
            reply = BusEnvelope(address=envelope.reply_address, correlation_id=envelope.correlation_id)
            if result.succeeded:
                reply.body = result.body or b""
            else:
                reply.failure_code = result.failure_code
                reply.failure_message = result.message or (result.failure.value if result.failure else "failure")
            try:
                self._client.publish(envelope.reply_address, reply.SerializeToString())
            except redis.RedisError as exc:
                log_event(LOGGER, logging.WARNING, "Failed to publish reply", address=envelope.reply_address, error=str(exc))

        message = BusMessage(envelope.address, envelope.body, dict(envelope.headers), _respond)
        try:
            handler(message)
        except Exception as exc:
            log_event(LOGGER, logging.WARNING, "Consumer raised", address=envelope.address, error=str(exc))
            message.fail(-1, str(exc) or exc.__class__.__name__)

    @staticmethod
    def _parse(raw: Mapping[str, Any]) -> Optional[Any]:
        data = raw.get("data")
        if not isinstance(data, (bytes, bytearray)):
            return None
        envelope = BusEnvelope()
        try:
            envelope.ParseFromString(bytes(data))
        except DecodeError:
            log_event(LOGGER, logging.WARNING, "Discarding malformed bus envelope", address=raw.get("channel"))
            return None
        return envelope

    # ------------------------------------------------------------------ lifecycle

    def close(self, timeout: float = 10.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            registrations = list(self._registrations)
            self._registrations.clear()
        workers = [registration.worker for registration in registrations]
        for registration in registrations:
            registration.unregister()
        if self._reply_worker is not None:
            self._reply_worker.stop()
            workers.append(self._reply_worker)
        for executor in (self._workers, self._delivery):
            executor.shutdown(wait=False, cancel_futures=True)
        for worker in workers:
            if isinstance(worker, threading.Thread) and worker.is_alive():
                worker.join(timeout)
        self._client.close()

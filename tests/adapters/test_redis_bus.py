from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest
import redis

from remote_transport.adapters.eventbus import BusMessage, DeliveryOptions, RedisEventBus, ReplyFailure, ReplyResult, ReplySlot
from remote_transport.protocol.messages import BusEnvelope


@pytest.fixture()
def redis_client():
    client = MagicMock()
    client.publish.return_value = 1
    return client


@pytest.fixture()
def redis_bus(redis_client):
    bus = RedisEventBus(client=redis_client, node_id="node-a")
    bus.connect()
    try:
        yield bus
    finally:
        bus.close(1.0)


def subscribed_handler(redis_client, channel: str):
    for call in redis_client.pubsub.return_value.subscribe.call_args_list:
        if channel in call.kwargs:
            return call.kwargs[channel]
    raise AssertionError(f"{channel} was never subscribed")


def published(redis_client, index: int = -1):
    channel, data = redis_client.publish.call_args_list[index].args
    envelope = BusEnvelope()
    envelope.ParseFromString(data)
    return channel, envelope


def test_connect_pings_and_listens_on_reply_channel(redis_bus, redis_client):
    redis_client.ping.assert_called_once()
    assert redis_bus.reply_channel == "eventbus:reply:node-a"
    assert callable(subscribed_handler(redis_client, "eventbus:reply:node-a"))
    redis_client.pubsub.return_value.run_in_thread.assert_called_with(sleep_time=0.05, daemon=True)


def test_request_publishes_envelope_and_correlates_reply(redis_bus, redis_client):
    slot: ReplySlot[ReplyResult] = ReplySlot()

    redis_bus.request("remote-data.exists", b"payload", DeliveryOptions(send_timeout=2000, headers={"h": "v"}), slot.complete)

    channel, envelope = published(redis_client)
    assert channel == "eventbus:remote-data.exists"
    assert envelope.address == "remote-data.exists"
    assert envelope.reply_address == "eventbus:reply:node-a"
    assert dict(envelope.headers) == {"h": "v"}
    assert envelope.body == b"payload"

    reply = BusEnvelope(correlation_id=envelope.correlation_id, body=b"answer")
    on_reply = subscribed_handler(redis_client, "eventbus:reply:node-a")
    on_reply({"type": "message", "channel": b"eventbus:reply:node-a", "data": reply.SerializeToString()})

    result = slot.wait(2.0)
    assert result.succeeded
    assert result.body == b"answer"


def test_remote_failure_envelope(redis_bus, redis_client):
    slot: ReplySlot[ReplyResult] = ReplySlot()
    redis_bus.request("remote-data.count", b"", DeliveryOptions(send_timeout=2000), slot.complete)
    _, envelope = published(redis_client)

    failure = BusEnvelope(correlation_id=envelope.correlation_id, failure_code=500, failure_message="boom")
    subscribed_handler(redis_client, "eventbus:reply:node-a")({"data": failure.SerializeToString()})

    result = slot.wait(2.0)
    assert result.failure is ReplyFailure.RECIPIENT_FAILURE
    assert result.failure_code == 500
    assert result.message == "boom"


def test_publish_without_subscribers_is_no_handlers(redis_bus, redis_client):
    redis_client.publish.return_value = 0
    slot: ReplySlot[ReplyResult] = ReplySlot()

    redis_bus.request("remote-data.save", b"", DeliveryOptions(send_timeout=2000), slot.complete)

    assert slot.wait(2.0).failure is ReplyFailure.NO_HANDLERS


def test_request_times_out_without_reply(redis_bus):
    slot: ReplySlot[ReplyResult] = ReplySlot()

    redis_bus.request("remote-data.count", b"", DeliveryOptions(send_timeout=50), slot.complete)

    assert slot.wait(2.0).failure is ReplyFailure.TIMEOUT


def test_publish_error_propagates(redis_bus, redis_client):
    redis_client.publish.side_effect = redis.ConnectionError("gone")

    with pytest.raises(redis.ConnectionError):
        redis_bus.request("remote-data.count", b"", DeliveryOptions(send_timeout=2000), lambda result: None)


def test_consumer_replies_to_sender(redis_bus, redis_client):
    replied = threading.Event()
    redis_client.publish.side_effect = lambda channel, data: replied.set() or 1

    def handler(message: BusMessage) -> None:
        assert message.headers == {"tenant": "acme"}
        message.reply(message.body.upper())

    redis_bus.consumer("remote-data.get-all", handler)
    dispatch = subscribed_handler(redis_client, "eventbus:remote-data.get-all")
    incoming = BusEnvelope(
        address="remote-data.get-all",
        reply_address="eventbus:reply:node-b",
        correlation_id="c-1",
        headers={"tenant": "acme"},
        body=b"ping",
    )
    dispatch({"type": "message", "data": incoming.SerializeToString()})

    assert replied.wait(2.0)
    channel, envelope = published(redis_client)
    assert channel == "eventbus:reply:node-b"
    assert envelope.correlation_id == "c-1"
    assert envelope.body == b"PING"


def test_consumer_exception_is_sent_as_failure(redis_bus, redis_client):
    replied = threading.Event()
    redis_client.publish.side_effect = lambda channel, data: replied.set() or 1

    def handler(message: BusMessage) -> None:
        raise ValueError("bad input")

    redis_bus.consumer("remote-data.save", handler)
    dispatch = subscribed_handler(redis_client, "eventbus:remote-data.save")
    dispatch({"data": BusEnvelope(reply_address="eventbus:reply:node-b", correlation_id="c-2").SerializeToString()})

    assert replied.wait(2.0)
    _, envelope = published(redis_client)
    assert envelope.failure_message == "bad input"
    assert envelope.failure_code == -1


def test_close_stops_listeners_and_client(redis_client):
    bus = RedisEventBus(client=redis_client, node_id="n")
    bus.connect()
    registration = bus.consumer("remote-data.count", lambda message: None)

    bus.close(1.0)
    bus.close(1.0)

    registration.worker.stop.assert_called()
    redis_client.close.assert_called_once()
    with pytest.raises(RuntimeError):
        bus.request("remote-data.count", b"", DeliveryOptions(), lambda result: None)

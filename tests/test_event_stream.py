"""Tests for push channel framing and reconnection."""

import json

import pytest

from custom_components.arlo_hub.core.config import ReconnectPolicy
from custom_components.arlo_hub.core.event_stream import (
    EventStreamClient,
    StreamBuffer,
    decode_frame,
    parse_event_message,
)
from custom_components.arlo_hub.core.errors import (
    ConnectionRefusedTransportError,
    UnparsableEnvelopeError,
)

from fakes import FakeStream, FakeTransport, settle, valid_session

CONNECTED = json.dumps({"status": "connected"})


def test_parse_event_message():
    message = parse_event_message('event: message\ndata: {"resource": "modes"}\n\n')

    assert message == {"event": "message", "data": {"resource": "modes"}}


def test_parse_event_message_misencoded_quote():
    message = parse_event_message("event: message\ndata: {“resource“: “siren/ABC“}")

    assert message is not None
    assert message["data"]["resource"] == "siren/ABC"


def test_parse_event_message_incomplete():
    assert parse_event_message('event: message\ndata: {"resource": ') is None
    assert parse_event_message("[]") is None


def test_decode_frame_rejects_non_object():
    with pytest.raises(UnparsableEnvelopeError):
        decode_frame("event: message\ndata: [1, 2]")


def test_buffer_reassembles_fragments():
    buffer = StreamBuffer()

    assert buffer.feed('event: message\ndata: {"action": "is",') == []
    assert buffer.pending
    messages = buffer.feed(' "resource": "devices"}\n\n')

    assert messages == [{"event": "message", "data": {"action": "is", "resource": "devices"}}]
    assert buffer.pending == ""


def test_buffer_delivers_once():
    buffer = StreamBuffer()
    assert len(buffer.feed(f"event: message\ndata: {CONNECTED}\n\n")) == 1
    # Keep-alive whitespace does not replay the previous message
    assert buffer.feed("\n") == []
    assert buffer.pending == ""


def test_buffer_splits_coalesced_frames():
    buffer = StreamBuffer()

    messages = buffer.feed(
        f"event: message\ndata: {CONNECTED}\n\n"
        'event: message\ndata: {"resource": "x"}\n\n'
    )

    assert [message["data"] for message in messages] == [
        {"status": "connected"},
        {"resource": "x"},
    ]
    assert buffer.pending == ""


def test_buffer_keeps_start_of_next_frame():
    first = f"event: message\ndata: {CONNECTED}\n\n"
    second = 'event: message\ndata: {"resource": "modes"}\n\n'
    buffer = StreamBuffer()

    assert buffer.feed(first[:12]) == []
    messages = buffer.feed(first[12:] + second[:10])
    assert [message["data"] for message in messages] == [{"status": "connected"}]
    assert buffer.pending == second[:10]

    messages = buffer.feed(second[10:] + f"event: message\ndata: {CONNECTED}\n\n")
    assert [message["data"] for message in messages] == [
        {"resource": "modes"},
        {"status": "connected"},
    ]
    assert buffer.pending == ""


def test_buffer_drops_bad_frame_and_continues():
    buffer = StreamBuffer()

    messages = buffer.feed('event: message\ndata: {oops\n\nevent: message\ndata: {"a": 1}\n\n')

    assert [message["data"] for message in messages] == [{"a": 1}]


def test_buffer_accepts_crlf_terminators():
    buffer = StreamBuffer()

    messages = buffer.feed('event: message\r\ndata: {"a": 1}\r\n\r\n')

    assert [message["data"] for message in messages] == [{"a": 1}]
    assert buffer.pending == ""


def test_buffer_overflow_discards_tail():
    buffer = StreamBuffer(max_size=16)

    assert buffer.feed("event: message\ndata: {" + "x" * 32) == []
    assert buffer.pending == ""


def _client(transport: FakeTransport, **policy) -> EventStreamClient:
    return EventStreamClient(transport, policy=ReconnectPolicy(initial_delay=0, **policy))


@pytest.mark.asyncio
async def test_delivers_envelopes_in_order():
    transport = FakeTransport()
    stream = FakeStream()
    transport.streams.append(stream)
    client = _client(transport)
    received = []
    client.on_event(received.append)

    await client.subscribe(valid_session())
    stream.push_envelope(CONNECTED)
    stream.push('event: message\ndata: {"resource": "siren/A", ')
    stream.push('"action": "is"}\n\n')
    await settle()

    assert client.connected
    assert received == [
        {"status": "connected"},
        {"resource": "siren/A", "action": "is"},
    ]
    await client.cancel()


@pytest.mark.asyncio
async def test_delivers_frames_sharing_one_chunk():
    transport = FakeTransport()
    stream = FakeStream()
    transport.streams.append(stream)
    client = _client(transport)
    received = []
    client.on_event(received.append)

    await client.subscribe(valid_session())
    stream.push(
        f"event: message\ndata: {CONNECTED}\n\n"
        'event: message\ndata: {"resource": "x"}\n\nevent: mess'
    )
    stream.push('age\ndata: {"resource": "modes"}\n\n')
    stream.push_envelope('{"resource": "siren/A"}')
    await settle()

    assert client.connected
    assert received == [
        {"status": "connected"},
        {"resource": "x"},
        {"resource": "modes"},
        {"resource": "siren/A"},
    ]
    await client.cancel()


@pytest.mark.asyncio
async def test_handler_failure_does_not_end_stream():
    transport = FakeTransport()
    stream = FakeStream()
    transport.streams.append(stream)
    client = _client(transport)
    received = []

    def _broken(envelope):
        raise RuntimeError("boom")

    client.on_event(_broken)
    client.on_event(received.append)
    await client.subscribe(valid_session())
    stream.push_envelope(CONNECTED)
    stream.push_envelope('{"resource": "modes"}')
    await settle()

    assert len(received) == 2
    assert client.running
    await client.cancel()


@pytest.mark.asyncio
async def test_reconnect_runs_handlers_once_per_drop():
    transport = FakeTransport()
    first, second = FakeStream(), FakeStream()
    transport.streams.extend([first, second])
    client = _client(transport)
    reconnects = []

    async def _on_reconnect():
        reconnects.append(True)

    client.on_reconnect(_on_reconnect)
    await client.subscribe(valid_session())
    first.push_envelope(CONNECTED)
    await settle()
    assert reconnects == []

    first.fail(ConnectionRefusedTransportError("reset"))
    await settle()
    assert first.closed
    assert not client.connected

    second.push_envelope(CONNECTED)
    second.push_envelope(CONNECTED)
    await settle()

    assert client.connected
    assert reconnects == [True]
    await client.cancel()


@pytest.mark.asyncio
async def test_cancel_stops_delivery_and_reconnect():
    transport = FakeTransport()
    stream = FakeStream()
    transport.streams.extend([stream, FakeStream()])
    client = _client(transport)
    received = []
    client.on_event(received.append)

    await client.subscribe(valid_session())
    stream.push_envelope(CONNECTED)
    await settle()
    await client.cancel()
    stream.push_envelope('{"resource": "modes"}')
    await settle()

    assert received == [{"status": "connected"}]
    assert not client.running
    assert len(transport.opened) == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    transport = FakeTransport()
    stream = FakeStream()
    transport.streams.append(stream)
    client = _client(transport, max_attempts=2)
    failures = []
    client.on_failure(lambda: failures.append(True))

    await client.subscribe(valid_session())
    stream.end()
    await settle()

    assert failures == [True]
    assert not client.running


def test_reconnect_policy_backoff():
    policy = ReconnectPolicy(initial_delay=1, multiplier=2, max_delay=5)

    assert [policy.delay_for(n) for n in range(1, 6)] == [0, 1, 2, 4, 5]

import asyncio
import json
from typing import List, Optional

import httpx
import pytest

from alynappi.relay import (
    RelayPhase,
    RelayState,
    StreamRelay,
    advance,
    finish,
    parse_frame_payload,
)


def frame(text: str, *, newline: str = "\n") -> bytes:
    payload = {"id": "cmpl-1", "choices": [{"index": 0, "delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}{newline}{newline}".encode("utf-8")


DONE = b"data: [DONE]\n\n"


class FakeUpstream:
    """Async context manager handing out pre-defined byte chunks."""

    def __init__(self, chunks: List[bytes], error: Optional[Exception] = None, endless: bool = False) -> None:
        self.chunks = chunks
        self.error = error
        self.endless = endless
        self.entered = False
        self.exited = False

    async def __aenter__(self):
        self.entered = True
        return self._iterate()

    async def __aexit__(self, *exc_info):
        self.exited = True
        return False

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error
        while self.endless:
            yield frame("lisää")


async def collect(relay: StreamRelay, upstream: FakeUpstream) -> List[bytes]:
    return [fragment async for fragment in relay.relay(upstream)]


def test_parse_frame_payload_extracts_delta_content():
    assert parse_frame_payload('{"choices": [{"delta": {"content": "Hei"}}]}') == "Hei"
    assert parse_frame_payload('{"choices": [{"delta": {"role": "assistant"}}]}') is None
    assert parse_frame_payload('{"choices": [{"delta": {"content": ""}}]}') is None
    assert parse_frame_payload('{"choices": []}') is None
    assert parse_frame_payload('{"foo": 1}') is None
    assert parse_frame_payload("{not json") is None


def test_only_the_first_choice_is_validated():
    payload = '{"choices": [{"delta": {"content": "Hei"}}, {"delta": "not an object"}, 7]}'

    assert parse_frame_payload(payload) == "Hei"
    assert parse_frame_payload('{"choices": [{"delta": 3}, {"delta": {"content": "x"}}]}') is None


def test_split_frame_is_reassembled():
    relay = StreamRelay()

    first = relay.feed(b'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\ndata: {"choi')
    second = relay.feed(b'ces":[{"delta":{"content":"lo"}}]}\n\n')

    assert first == ["Hel"]
    assert second == ["lo"]
    assert "".join(first + second) == "Hello"


def test_frame_split_inside_json_string():
    relay = StreamRelay()

    first = relay.feed(b'data: {"choices":[{"delta":{"content":"Hel')
    second = relay.feed(b'lo"}}]}\n\ndata: [DONE]\n\n')

    assert first == []
    assert second == ["Hello"]
    assert relay.phase is RelayPhase.DONE


def test_every_split_offset_yields_the_same_text():
    data = frame("Hyvää päivää 👋") + frame(" ja kiitos") + DONE
    expected = "Hyvää päivää 👋 ja kiitos"

    for offset in range(len(data) + 1):
        relay = StreamRelay()
        deltas = relay.feed(data[:offset]) + relay.feed(data[offset:]) + relay.close()
        assert "".join(deltas) == expected, offset
        assert relay.phase is RelayPhase.DONE


def test_byte_by_byte_feed_keeps_multibyte_characters_intact():
    data = frame("äänikirja ♪ 🎧")
    relay = StreamRelay()

    deltas: List[str] = []
    for index in range(len(data)):
        deltas.extend(relay.feed(data[index : index + 1]))

    assert deltas == ["äänikirja ♪ 🎧"]
    assert "�" not in "".join(deltas)


def test_done_discards_everything_after_it():
    relay = StreamRelay()

    deltas = relay.feed(frame("a") + DONE + frame("b"))

    assert deltas == ["a"]
    assert relay.phase is RelayPhase.DONE
    assert relay.feed(frame("c")) == []
    assert relay.close() == []


def test_malformed_and_foreign_lines_are_skipped():
    data = (
        b"data: {not json}\n"
        b"event: ping\n"
        b": keep-alive comment\n"
        b"data:{\"choices\":[{\"delta\":{\"content\":\"no space\"}}]}\n"
        b'data: {"choices":[{"delta":{}}]}\n'
        b'data: {"foo": 1}\n'
        b"data: \n"
        + frame("ok")
    )

    assert StreamRelay().feed(data) == ["ok"]


def test_crlf_and_cr_line_endings():
    relay = StreamRelay()

    deltas = relay.feed(frame("yksi", newline="\r\n") + frame("kaksi", newline="\r"))

    assert deltas == ["yksi", "kaksi"]


def test_close_flushes_trailing_line_without_done():
    relay = StreamRelay()

    assert relay.feed(b'data: {"choices":[{"delta":{"content":"loppu"}}]}') == []
    assert relay.close() == ["loppu"]
    assert relay.phase is RelayPhase.DONE


def test_pure_transitions_do_not_mutate_state():
    state = RelayState()

    next_state, deltas = advance(state, b'data: {"choices":[{"delta":{"content":"x"}}]}')

    assert deltas == []
    assert state == RelayState()
    assert next_state.buffer.startswith("data: ")
    final_state, flushed = finish(next_state)
    assert flushed == ["x"]
    assert final_state.phase is RelayPhase.DONE


def test_relay_streams_utf8_fragments_and_releases_upstream():
    data = frame("Hei") + frame(" maailma ä")
    upstream = FakeUpstream([data[:7], data[7:40], data[40:], DONE, frame("ignored")])
    relay = StreamRelay(req_id="test")

    fragments = asyncio.run(collect(relay, upstream))

    assert b"".join(fragments).decode("utf-8") == "Hei maailma ä"
    assert relay.fragments == 2
    assert relay.phase is RelayPhase.DONE
    assert upstream.entered and upstream.exited


def test_relay_flushes_when_upstream_closes_without_done():
    upstream = FakeUpstream([b'data: {"choices":[{"delta":{"content":"viimeinen"}}]}'])

    fragments = asyncio.run(collect(StreamRelay(), upstream))

    assert fragments == ["viimeinen".encode("utf-8")]


def test_transport_error_marks_relay_errored_and_propagates():
    upstream = FakeUpstream([frame("osittainen")], error=httpx.ReadError("connection reset"))
    relay = StreamRelay()
    received: List[bytes] = []

    async def consume() -> None:
        async for fragment in relay.relay(upstream):
            received.append(fragment)

    with pytest.raises(httpx.ReadError):
        asyncio.run(consume())

    assert received == ["osittainen".encode("utf-8")]
    assert relay.phase is RelayPhase.ERRORED
    assert upstream.exited


def test_consumer_closing_early_releases_upstream():
    upstream = FakeUpstream([], endless=True)
    relay = StreamRelay()

    async def take_one() -> bytes:
        stream = relay.relay(upstream)
        fragment = await stream.__anext__()
        await stream.aclose()
        return fragment

    assert asyncio.run(take_one()) == "lisää".encode("utf-8")
    assert upstream.exited

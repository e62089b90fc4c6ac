"""Incremental relay from a chat-completion event stream to plain text.

The upstream sends ``data: <json>`` lines in arbitrary network fragments. The
relay keeps two pieces of carry-over state between reads: undecoded bytes of
an incomplete UTF-8 sequence and the incomplete trailing line. Both live in an
immutable :class:`RelayState` that the pure functions :func:`advance` and
:func:`finish` thread through each step; :class:`StreamRelay` drives them over
a live stream.
"""
from __future__ import annotations

import codecs
import json
import logging
import re
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, AsyncContextManager, AsyncIterator, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from alynappi.telemetry import emit_relay_event

LOGGER = logging.getLogger(__name__)

FRAME_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class RelayPhase(str, Enum):
    RECEIVING = "receiving"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class RelayState:
    buffer: str = ""
    pending: bytes = b""
    phase: RelayPhase = RelayPhase.RECEIVING


class _Delta(BaseModel):
    content: Optional[str] = None


class _Choice(BaseModel):
    delta: _Delta


class _CompletionChunk(BaseModel):
    choices: List[Any]


def parse_frame_payload(payload: str) -> Optional[str]:
    """Return the text delta carried by *payload*, or ``None``.

    ``None`` covers both frames without content (role announcements, finish
    markers) and payloads that are not a valid completion chunk.
    """

    try:
        chunk = _CompletionChunk.model_validate(json.loads(payload))
        if not chunk.choices:
            return None
        choice = _Choice.model_validate(chunk.choices[0])
    except (ValueError, ValidationError):
        LOGGER.debug("Discarding malformed frame payload: %.80s", payload)
        return None
    return choice.delta.content or None


def _decode(pending: bytes, data: bytes, *, final: bool) -> Tuple[str, bytes]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    text = decoder.decode(pending + data, final=final)
    leftover, _ = decoder.getstate()
    return text, leftover


def _process_lines(lines: List[str]) -> Tuple[List[str], bool]:
    deltas: List[str] = []
    for line in lines:
        if not line.startswith(FRAME_PREFIX):
            continue
        payload = line[len(FRAME_PREFIX) :].strip()
        if payload == DONE_SENTINEL:
            return deltas, True
        if not payload:
            continue
        text = parse_frame_payload(payload)
        if text:
            deltas.append(text)
    return deltas, False


def advance(state: RelayState, data: bytes) -> Tuple[RelayState, List[str]]:
    """Consume one upstream read and return the new state and decoded deltas."""

    if state.phase is not RelayPhase.RECEIVING:
        return state, []
    text, pending = _decode(state.pending, data, final=False)
    lines = _LINE_BREAK_RE.split(state.buffer + text)
    remainder = lines.pop()
    deltas, done = _process_lines(lines)
    if done:
        return RelayState(phase=RelayPhase.DONE), deltas
    return replace(state, buffer=remainder, pending=pending), deltas


def finish(state: RelayState) -> Tuple[RelayState, List[str]]:
    """Flush the buffered trailing line once the upstream has closed."""

    if state.phase is not RelayPhase.RECEIVING:
        return state, []
    text, _ = _decode(state.pending, b"", final=True)
    lines = _LINE_BREAK_RE.split(state.buffer + text)
    deltas, _ = _process_lines(lines)
    return RelayState(phase=RelayPhase.DONE), deltas


def fail(state: RelayState) -> RelayState:
    """Mark the relay as terminated by a transport error."""

    return replace(state, phase=RelayPhase.ERRORED)


class StreamRelay:
    """Relay text deltas from an upstream event stream as UTF-8 fragments."""

    def __init__(self, req_id: str | None = None) -> None:
        self.req_id = req_id
        self.state = RelayState()
        self.fragments = 0
        self.characters = 0

    @property
    def phase(self) -> RelayPhase:
        return self.state.phase

    def feed(self, data: bytes) -> List[str]:
        self.state, deltas = advance(self.state, data)
        return deltas

    def close(self) -> List[str]:
        self.state, deltas = finish(self.state)
        return deltas

    def _count(self, deltas: List[str]) -> None:
        self.fragments += len(deltas)
        self.characters += sum(len(delta) for delta in deltas)

    async def relay(self, upstream: AsyncContextManager[AsyncIterator[bytes]]) -> AsyncIterator[bytes]:
        """Yield each delta as soon as it is decoded.

        The upstream is entered for the whole relay and released on every exit
        path, including when the consumer stops iterating.
        """

        started = time.perf_counter()
        try:
            async with upstream as chunks:
                async for data in chunks:
                    deltas = self.feed(data)
                    self._count(deltas)
                    for delta in deltas:
                        yield delta.encode("utf-8")
                    if self.phase is RelayPhase.DONE:
                        break
                else:
                    deltas = self.close()
                    self._count(deltas)
                    for delta in deltas:
                        yield delta.encode("utf-8")
        except Exception as error:
            self.state = fail(self.state)
            emit_relay_event(
                "relay.error",
                req_id=self.req_id,
                phase=self.phase.value,
                fragments=self.fragments,
                characters=self.characters,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                error=error,
            )
            raise
        emit_relay_event(
            "relay.complete",
            req_id=self.req_id,
            phase=self.phase.value,
            fragments=self.fragments,
            characters=self.characters,
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )

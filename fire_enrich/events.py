"""Decoding of server-pushed event streams.

The producer answers enrichment and query requests with newline-delimited
``data: <JSON>`` frames in server-sent-events style. Each JSON object carries a
``type`` discriminator selecting one of the event models below.

Decoding is total: a frame that is not a ``data:`` line, is not valid JSON,
names an unknown ``type``, or fails validation decodes to ``None`` and is
dropped by the stream helpers. Nothing raised while parsing a frame escapes
into the read loop.

Typical usage:
    ```python
    async for event in decode_stream(api.stream_enrichment(request), ENRICHMENT_EVENTS):
        session.apply(event)
    ```
"""

import asyncio
import contextlib
import logging
from typing import Annotated, AsyncIterable, AsyncIterator, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from fire_enrich.models import RowEnrichmentResult, WireModel

logger = logging.getLogger(__name__)

FRAME_PREFIX = "data: "


# --- Enrichment stream events ---


class SessionEvent(WireModel):
    type: Literal["session"]
    session_id: str


class PendingEvent(WireModel):
    type: Literal["pending"]
    row_index: int = Field(ge=0)


class ProcessingEvent(WireModel):
    type: Literal["processing"]
    row_index: int = Field(ge=0)


class ResultEvent(WireModel):
    type: Literal["result"]
    result: RowEnrichmentResult


class CompleteEvent(WireModel):
    type: Literal["complete"]


class CancelledEvent(WireModel):
    type: Literal["cancelled"]


class ErrorEvent(WireModel):
    type: Literal["error"]
    error: str | None = None


class AgentProgressEvent(WireModel):
    """Progress narration from a research agent working on one row."""

    type: Literal["agent_progress"]
    message: str
    message_type: str = "info"
    row_index: int | None = None
    source_url: str | None = None


EnrichmentEvent = Annotated[
    Union[
        SessionEvent,
        PendingEvent,
        ProcessingEvent,
        ResultEvent,
        CompleteEvent,
        CancelledEvent,
        ErrorEvent,
        AgentProgressEvent,
    ],
    Field(discriminator="type"),
]


# --- Query stream events ---


class StatusSource(BaseModel, frozen=True):
    url: str | None = None


class QueryStatusEvent(WireModel):
    type: Literal["status"]
    message: str
    source: StatusSource | None = None


class QueryResponseEvent(WireModel):
    type: Literal["response"]
    message: str


class QueryErrorEvent(WireModel):
    type: Literal["error"]
    message: str = "An error occurred while answering your question."


QueryEvent = Annotated[
    Union[QueryStatusEvent, QueryResponseEvent, QueryErrorEvent],
    Field(discriminator="type"),
]

ENRICHMENT_EVENTS: TypeAdapter[EnrichmentEvent] = TypeAdapter(EnrichmentEvent)
QUERY_EVENTS: TypeAdapter[QueryEvent] = TypeAdapter(QueryEvent)

E = TypeVar("E")


def decode_frame(line: str, adapter: TypeAdapter[E]) -> E | None:
    """Parse one line of the stream, returning ``None`` for anything unusable."""
    line = line.rstrip("\r")
    if not line.startswith(FRAME_PREFIX):
        return None
    try:
        return adapter.validate_json(line[len(FRAME_PREFIX):])
    except ValidationError as exc:
        logger.debug("Dropping malformed frame %r: %s", line[:200], exc.errors()[:1])
        return None


class EventDecoder(Generic[E]):
    """Incremental decoder over raw text chunks.

    Chunks may split a frame anywhere; the partial trailing line is buffered
    until the next newline or until ``flush()`` at end of stream.
    """

    def __init__(self, adapter: TypeAdapter[E]):
        self.adapter = adapter
        self._buffer = ""

    def feed(self, chunk: str) -> list[E]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def flush(self) -> list[E]:
        """Decode whatever remains buffered, treating it as a final line."""
        remainder, self._buffer = self._buffer, ""
        return self._decode_lines([remainder]) if remainder else []

    def _decode_lines(self, lines: list[str]) -> list[E]:
        events: list[E] = []
        for line in lines:
            event = decode_frame(line, self.adapter)
            if event is not None:
                events.append(event)
        return events


async def decode_stream(chunks: AsyncIterable[str], adapter: TypeAdapter[E]) -> AsyncIterator[E]:
    """Yield decoded events from an async iterable of raw text chunks.

    The sequence is lazy, finite (it ends when ``chunks`` ends) and not
    restartable.
    """
    decoder = EventDecoder(adapter)
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event


async def until_stopped(events: AsyncIterator[E], stop: asyncio.Event) -> AsyncIterator[E]:
    """Yield from ``events`` until ``stop`` is set.

    A read still pending when ``stop`` fires is cancelled, which unwinds the
    underlying stream generators and closes their transport.
    """

    async def next_event() -> E:
        return await anext(events)

    stop_wait = asyncio.ensure_future(stop.wait())
    try:
        while not stop.is_set():
            read = asyncio.ensure_future(next_event())
            done, _ = await asyncio.wait({read, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
            if read not in done:
                read.cancel()
                with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                    await read
                return
            try:
                event = read.result()
            except StopAsyncIteration:
                return
            yield event
    finally:
        stop_wait.cancel()

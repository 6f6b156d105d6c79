"""Relay from the upstream generation stream to the client event stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Protocol

from rag_relay.relay.events import ClientEvent, Completed, Error, TextDelta, is_terminal, map_upstream_event
from rag_relay.relay.sse import SSEDecoder, encode_client_event
from rag_relay.types import UpstreamEvent

logger = logging.getLogger(__name__)

UNEXPECTED_END_MESSAGE = "upstream stream ended before completion"


class EventSink(Protocol):
    """Outbound byte stream written by ``StreamRelay.pump``."""

    async def write(self, data: bytes) -> None: ...

    async def close(self) -> None: ...


class SinkClosedError(RuntimeError):
    """Raised when a sink is written to or closed after it was closed."""


class QueueSink:
    """Sink backed by an ``asyncio.Queue`` that is also an async iterator.

    The HTTP layer iterates it while a ``pump`` task fills it. A ``maxsize``
    gives the writer the same backpressure a socket would.
    """

    _CLOSED = object()

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self.closed = False
        self.close_count = 0

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise SinkClosedError("write after close")
        await self._queue.put(data)

    async def close(self) -> None:
        self.close_count += 1
        if self.closed:
            raise SinkClosedError("sink closed twice")
        self.closed = True
        # A full queue means the reader is not waiting; it stops once drained.
        try:
            self._queue.put_nowait(self._CLOSED)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> "QueueSink":
        return self

    async def __anext__(self) -> bytes:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


class StreamRelay:
    """Re-frames an upstream event stream into the minimal client vocabulary.

    Every run ends with exactly one terminal event (``done`` or ``error``).
    Upstream faults become a synthetic ``error`` event; an upstream that ends
    without a terminal event gets one manufactured. Nothing after the first
    terminal event is forwarded.
    """

    async def events(self, upstream: AsyncIterable[bytes]) -> AsyncIterator[ClientEvent]:
        decoder = SSEDecoder()
        iterator = aiter(upstream)
        terminated = False
        deltas = 0
        try:
            try:
                async for chunk in iterator:
                    for event in _mapped(decoder.feed(chunk)):
                        if isinstance(event, TextDelta):
                            deltas += 1
                            if deltas == 1:
                                logger.debug("relay first delta")
                        yield event
                        if is_terminal(event):
                            terminated = True
                            break
                    if terminated:
                        break
                else:
                    for event in _mapped(decoder.flush()):
                        yield event
                        if is_terminal(event):
                            terminated = True
                            break
            except Exception as exc:
                logger.warning("upstream stream failed: %s", exc)
                terminated = True
                yield Error(message=str(exc) or exc.__class__.__name__)

            if not terminated:
                logger.warning(UNEXPECTED_END_MESSAGE)
                yield Error(message=UNEXPECTED_END_MESSAGE)
        finally:
            await _close_upstream(iterator)
        logger.info("relay finished deltas=%d", deltas)

    async def relay(self, upstream: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Encoded client events for ``upstream``; closing this generator closes the upstream."""

        events = self.events(upstream)
        try:
            async for event in events:
                yield encode_client_event(event)
        finally:
            await events.aclose()

    async def synthetic(self, message: str) -> AsyncIterator[bytes]:
        """A complete answer made of one fixed text delta, without any upstream."""

        yield encode_client_event(TextDelta(text=message))
        yield encode_client_event(Completed())

    async def pump(self, source: AsyncIterable[bytes], sink: EventSink) -> None:
        """Copy ``source`` into ``sink``; the sink is closed exactly once on every path."""

        iterator = aiter(source)
        try:
            async for data in iterator:
                await sink.write(data)
        finally:
            try:
                await _close_upstream(iterator)
            finally:
                await sink.close()


def _mapped(upstream_events: list[UpstreamEvent]) -> list[ClientEvent]:
    mapped: list[ClientEvent] = []
    for upstream_event in upstream_events:
        event = map_upstream_event(upstream_event)
        if event is not None:
            mapped.append(event)
    return mapped


async def _close_upstream(iterator: object) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()

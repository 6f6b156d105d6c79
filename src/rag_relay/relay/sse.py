"""Incremental Server-Sent Events decoding and client-side encoding."""

from __future__ import annotations

import codecs
import json

from rag_relay.relay.events import ClientEvent
from rag_relay.types import UpstreamEvent

_DELIMITER = "\n\n"


class SSEDecoder:
    """Reassembles blank-line delimited events from arbitrarily split reads.

    The only state is the text buffer of the not-yet-terminated segment (plus
    the UTF-8 decoder's pending bytes). ``feed`` returns every event completed
    by the new bytes; a partial segment stays buffered until a later read
    delivers its delimiter.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, data: bytes) -> list[UpstreamEvent]:
        text = self._decoder.decode(data)
        if not text:
            return []
        # CRLF split across reads still normalises because the whole buffer is rewritten.
        self._buffer = (self._buffer + text).replace("\r\n", "\n")
        return self._drain()

    def flush(self) -> list[UpstreamEvent]:
        """Finish the stream.

        A trailing segment is dispatched only if its last line is complete;
        a segment cut off mid-line is discarded.
        """

        tail = self._decoder.decode(b"", final=True)
        self._buffer = (self._buffer + tail).replace("\r\n", "\n")
        events = self._drain()
        residual, self._buffer = self._buffer, ""
        if residual.endswith("\n"):
            event = parse_event(residual)
            if event is not None:
                events.append(event)
        return events

    def _drain(self) -> list[UpstreamEvent]:
        events: list[UpstreamEvent] = []
        while True:
            index = self._buffer.find(_DELIMITER)
            if index < 0:
                return events
            segment = self._buffer[:index]
            self._buffer = self._buffer[index + len(_DELIMITER) :]
            event = parse_event(segment)
            if event is not None:
                events.append(event)


def parse_event(segment: str) -> UpstreamEvent | None:
    """Parse one delimiter-free segment; segments without data yield ``None``."""

    name: str | None = None
    data_lines: list[str] = []
    for line in segment.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            name = value or None
        elif field == "data":
            data_lines.append(value)

    if not data_lines:
        return None
    return UpstreamEvent(data="\n".join(data_lines), event=name)


def encode_client_event(event: ClientEvent) -> bytes:
    payload = json.dumps(event.to_payload(), ensure_ascii=False)
    return f"data: {payload}\n\n".encode("utf-8")

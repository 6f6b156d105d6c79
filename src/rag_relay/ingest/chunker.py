"""Character sliding-window chunking."""

from __future__ import annotations

from rag_relay.config import ChunkingConfig
from rag_relay.types import ParsedDocument


class SlidingWindowChunker:
    """Cuts text into fixed-size character windows with overlap.

    Windows are ``max_chars`` long and start ``max_chars - overlap_chars``
    apart, so adjacent chunks share ``overlap_chars`` characters of context.
    Each window is stripped; windows that are only whitespace are dropped.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk_text(self, text: str) -> list[str]:
        size = self.config.max_chars
        stride = size - self.config.overlap_chars
        chunks: list[str] = []
        start = 0
        while start < len(text):
            end = min(start + size, len(text))
            piece = text[start:end].strip()
            if piece:
                chunks.append(piece)
            if end == len(text):
                break
            start += stride
        return chunks

    def chunk_document(self, document: ParsedDocument) -> list[str]:
        return self.chunk_text(document.text)

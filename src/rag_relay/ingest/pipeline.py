"""Offline ingest pipeline: parse -> chunk -> embed -> key-value records."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from rag_relay.config import ChunkingConfig
from rag_relay.ingest.chunker import SlidingWindowChunker
from rag_relay.ingest.embedder import Embedder
from rag_relay.ingest.parser import ParserRegistry
from rag_relay.obs.tracing import Timer
from rag_relay.types import ChunkRecord

logger = logging.getLogger(__name__)


def chunk_key(doc_id: str, index: int) -> str:
    return f"doc:{doc_id}:chunk:{index}"


def _batches(items: list[str], size: int) -> Iterator[tuple[int, list[str]]]:
    for start in range(0, len(items), size):
        yield start, items[start : start + size]


class IngestPipeline:
    """Produces the chunk records the retriever scans at query time.

    Embeddings are requested in batches of ``embed_batch_size`` texts. Every
    record of one run comes from the same embedder, so all vectors in the
    output share one dimension.
    """

    def __init__(
        self,
        parser_registry: ParserRegistry,
        chunker: SlidingWindowChunker,
        embedder: Embedder,
        config: ChunkingConfig | None = None,
    ) -> None:
        self._parser_registry = parser_registry
        self._chunker = chunker
        self._embedder = embedder
        self.config = config or chunker.config

    def ingest_path(self, path: str | Path, *, doc_id: str | None = None) -> list[ChunkRecord]:
        """Ingest a single source file and return its chunk records."""

        parsed = self._parser_registry.parse_path(path, doc_id=doc_id)
        texts = self._chunker.chunk_document(parsed)
        records: list[ChunkRecord] = []

        with Timer() as timer:
            for start, batch in _batches(texts, self.config.embed_batch_size):
                logger.info(
                    "embedding %s [%d..%d]", parsed.doc_id, start, start + len(batch) - 1
                )
                vectors = self._embedder.embed_documents(batch)
                for offset, (text, vector) in enumerate(zip(batch, vectors, strict=True)):
                    key = chunk_key(parsed.doc_id, start + offset)
                    records.append(
                        ChunkRecord(id=key, doc_id=parsed.doc_id, text=text, embedding=vector)
                    )

        logger.info(
            "ingested %s chunks=%d elapsed_ms=%.1f", parsed.doc_id, len(records), timer.elapsed_ms
        )
        return records

    def ingest_directory(self, directory: str | Path) -> list[ChunkRecord]:
        """Ingest every supported file directly inside ``directory``."""

        root = Path(directory)
        files = sorted(p for p in root.iterdir() if p.is_file() and self._parser_registry.supports(p))
        if not files:
            raise FileNotFoundError(f"No supported documents found in {root}")

        records: list[ChunkRecord] = []
        for file_path in files:
            logger.info("reading %s", file_path.name)
            records.extend(self.ingest_path(file_path))
        return records


def to_kv_items(records: list[ChunkRecord]) -> list[dict[str, Any]]:
    return [{"key": record.id, "value": record.to_json()} for record in records]


def write_bulk_file(records: list[ChunkRecord], path: str | Path) -> Path:
    """Write records in the ``[{"key", "value"}]`` bulk-upload format."""

    out = Path(path)
    out.write_text(json.dumps(to_kv_items(records), indent=2), encoding="utf-8")
    return out

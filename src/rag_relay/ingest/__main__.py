"""Command-line ingestion: PDFs and text files -> chunk records.

Usage:
    python -m rag_relay.ingest ./pdfs                      # write kv_bulk.json
    python -m rag_relay.ingest ./pdfs --store rag_relay.db # load into SQLite
    python -m rag_relay.ingest ./pdfs --hashing            # offline embeddings
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rag_relay.config import Settings
from rag_relay.errors import RagRelayError
from rag_relay.ingest.chunker import SlidingWindowChunker
from rag_relay.ingest.embedder import Embedder, HashingEmbedder, OpenAIEmbedder
from rag_relay.ingest.parser import ParserRegistry
from rag_relay.ingest.pipeline import IngestPipeline, write_bulk_file
from rag_relay.obs.logger import configure_logging
from rag_relay.retrieval.store import SqliteChunkStore

logger = logging.getLogger("rag_relay.ingest")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rag-relay-ingest",
        description="Chunk and embed documents into key-value chunk records.",
    )
    parser.add_argument("source", type=Path, help="Directory containing .pdf/.txt/.md files.")
    parser.add_argument("--out", type=Path, default=Path("kv_bulk.json"), help="Bulk JSON output path.")
    parser.add_argument("--store", type=Path, default=None, help="Also upsert records into this SQLite store.")
    parser.add_argument("--hashing", action="store_true", help="Use deterministic hashing embeddings (no API calls).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)

    embedder: Embedder
    if args.hashing:
        embedder = HashingEmbedder()
    else:
        api_key = settings.api_key()
        if api_key is None:
            logger.error("OPENAI_API_KEY is required unless --hashing is given")
            return 2
        embedder = OpenAIEmbedder(api_key=api_key, model=settings.embedding_model)

    pipeline = IngestPipeline(
        ParserRegistry(),
        SlidingWindowChunker(settings.chunking),
        embedder,
        settings.chunking,
    )
    try:
        records = pipeline.ingest_directory(args.source)
    except (FileNotFoundError, RagRelayError) as exc:
        logger.error("%s", exc)
        return 1

    out = write_bulk_file(records, args.out)
    logger.info("wrote %d chunks to %s", len(records), out)
    if args.store is not None:
        written = SqliteChunkStore(args.store).put_many((r.id, r.to_json()) for r in records)
        logger.info("upserted %d chunks into %s", written, args.store)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""Bounded, paginated similarity search over a key-value chunk store."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence

from pydantic import ValidationError

from rag_relay.config import RetrievalConfig
from rag_relay.errors import DimensionMismatchError, RetrievalUnavailableError
from rag_relay.obs.tracing import Timer
from rag_relay.retrieval.similarity import cosine_similarity
from rag_relay.retrieval.store import ChunkStore
from rag_relay.types import ChunkRecord, ScoredCandidate

logger = logging.getLogger(__name__)


class KVRetriever:
    """Scans a chunk store page by page and ranks chunks against a query vector.

    Work per request is capped twice: by the number of ``list`` rounds
    (``max_pages``) and by the number of values fetched and scored
    (``max_candidates``). Values of one page are fetched concurrently and
    awaited as a group; the page size set by the store bounds that fan-out.
    """

    def __init__(self, store: ChunkStore, config: RetrievalConfig | None = None) -> None:
        self.store = store
        self.config = config or RetrievalConfig()

    async def retrieve(
        self,
        query_vector: Sequence[float],
        *,
        config: RetrievalConfig | None = None,
    ) -> list[ScoredCandidate]:
        """Return up to ``top_k`` candidates scoring at least ``min_score``.

        Raises:
            RetrievalUnavailableError: a ``list`` or ``get`` call failed, or
                every embedded chunk had a different dimension than the
                query. An empty list means the scan succeeded and nothing
                was relevant.
        """

        cfg = config or self.config
        candidates: list[ScoredCandidate] = []
        processed = 0
        pages = 0
        skipped = 0
        mismatched = 0
        cursor: str | None = None

        with Timer() as timer:
            while pages < cfg.max_pages:
                remaining = cfg.max_candidates - processed
                if remaining <= 0:
                    break

                try:
                    page = await self.store.list(cfg.key_prefix, cursor)
                except Exception as exc:
                    raise RetrievalUnavailableError(f"chunk listing failed: {exc}") from exc
                pages += 1

                selected = page.keys[:remaining]
                processed += len(selected)
                try:
                    values = await asyncio.gather(*(self.store.get(key) for key in selected))
                except Exception as exc:
                    raise RetrievalUnavailableError(f"chunk fetch failed: {exc}") from exc

                for key, raw in zip(selected, values, strict=True):
                    try:
                        scored = _score(key, raw, query_vector)
                    except DimensionMismatchError as exc:
                        logger.warning("skipping chunk %s: %s", key, exc)
                        mismatched += 1
                        scored = None
                    if scored is None:
                        skipped += 1
                        continue
                    candidates.append(scored)

                cursor = page.cursor
                if not cursor:
                    break

        if mismatched and not candidates:
            # Every comparable chunk has another dimension: the query model differs from the indexed one.
            raise RetrievalUnavailableError(
                f"query vector has {len(query_vector)} dimensions; {mismatched} stored chunks did not match"
            )

        ranked = sorted(candidates, key=lambda item: item.score, reverse=True)
        results = [item for item in ranked if item.score >= cfg.min_score][: cfg.top_k]
        logger.info(
            "retrieval prefix=%r pages=%d fetched=%d skipped=%d returned=%d elapsed_ms=%.1f",
            cfg.key_prefix,
            pages,
            processed,
            skipped,
            len(results),
            timer.elapsed_ms,
        )
        return results


def _score(key: str, raw: str | None, query_vector: Sequence[float]) -> ScoredCandidate | None:
    if raw is None:
        return None
    try:
        record = ChunkRecord.model_validate_json(raw)
    except ValidationError:
        logger.debug("skipping unparseable chunk %s", key)
        return None
    if not record.embedding:
        logger.debug("skipping chunk without embedding %s", key)
        return None
    score = cosine_similarity(query_vector, record.embedding)
    if not math.isfinite(score):
        logger.warning("skipping chunk %s: non-finite score", key)
        return None
    return ScoredCandidate(text=record.text, doc_id=record.doc_id, score=score, chunk_id=record.id)

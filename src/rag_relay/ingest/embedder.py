"""Embedding abstractions: deterministic baseline and OpenAI-backed implementation."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

from rag_relay.errors import UpstreamServiceError


class Embedder(ABC):
    """Embedder interface used by ingest and query-time retrieval."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""

    async def aembed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self.embed_query, text)


class HashingEmbedder(Embedder):
    """Deterministic embedding without external model calls.

    Used by tests and by ``--hashing`` offline ingestion. Vectors are only
    comparable with other ``HashingEmbedder`` vectors of the same dimension.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    async def aembed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbedder(Embedder):
    """Embeddings from the OpenAI API via ``langchain-openai``.

    Provider failures are re-raised as ``UpstreamServiceError`` so the HTTP
    layer can answer with a gateway error before any streaming starts.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "text-embedding-3-small",
        client: Embeddings | None = None,
    ) -> None:
        self.model = model
        if client is None:
            from langchain_openai import OpenAIEmbeddings

            client = OpenAIEmbeddings(model=model, api_key=api_key)
        self._client = client

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        try:
            return self._client.embed_documents(texts)
        except Exception as exc:
            raise UpstreamServiceError("embedding", _status_of(exc), str(exc)) from exc

    def embed_query(self, text: str) -> list[float]:
        try:
            return self._client.embed_query(text)
        except Exception as exc:
            raise UpstreamServiceError("embedding", _status_of(exc), str(exc)) from exc

    async def aembed_query(self, text: str) -> list[float]:
        try:
            vector = await self._client.aembed_query(text)
        except Exception as exc:
            raise UpstreamServiceError("embedding", _status_of(exc), str(exc)) from exc
        if not vector:
            raise UpstreamServiceError("embedding", None, "no vector returned")
        return vector


def _status_of(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None

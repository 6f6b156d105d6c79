"""FastAPI entrypoint for the streaming RAG chat relay."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, StreamingResponse

from rag_relay.config import Settings
from rag_relay.errors import (
    ConfigurationError,
    EmptyQueryError,
    RetrievalUnavailableError,
    UpstreamServiceError,
)
from rag_relay.generation.client import Generator, ResponsesClient
from rag_relay.generation.prompt import PromptAssembler
from rag_relay.ingest.embedder import Embedder, OpenAIEmbedder
from rag_relay.obs.logger import configure_logging
from rag_relay.retrieval.retriever import KVRetriever
from rag_relay.retrieval.store import ChunkStore, SqliteChunkStore
from rag_relay.service import ChatRequest, ChatService

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
RETRIEVAL_UNAVAILABLE_MESSAGE = "Retrieval unavailable, please try again later."


def create_app(
    settings: Settings | None = None,
    *,
    store: ChunkStore | None = None,
    embedder: Embedder | None = None,
    generator: Generator | None = None,
) -> FastAPI:
    """Build the app once per process; collaborators default from ``settings``."""

    settings = settings or Settings()
    configure_logging(settings.log_level)
    api_key = settings.api_key()

    if store is None:
        store = SqliteChunkStore(settings.store_path)
    if embedder is None and api_key is not None:
        embedder = OpenAIEmbedder(api_key=api_key, model=settings.embedding_model)
    owned: list[ResponsesClient] = []
    if generator is None and api_key is not None:
        generator = ResponsesClient(api_key, settings.generation)
        owned.append(generator)

    service = (
        ChatService(
            embedder=embedder,
            retriever=KVRetriever(store, settings.retrieval),
            assembler=PromptAssembler(),
            generator=generator,
        )
        if embedder is not None
        else None
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            for client in owned:
                await client.aclose()
            logger.info("closed %d generation client(s)", len(owned))

    app = FastAPI(title="RAG Relay", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service
    app.state.generator = generator

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "embedder_configured": service is not None,
            "generator_configured": generator is not None,
            "key_prefix": settings.retrieval.key_prefix,
        }

    @app.post("/chat")
    async def chat(request: Request) -> Any:
        try:
            if service is None:
                raise ConfigurationError("Server misconfigured: missing OPENAI_API_KEY")
            body = ChatRequest.parse_body(await request.body())
            reply = await service.prepare(body)
        except ConfigurationError as exc:
            logger.error("%s", exc)
            return PlainTextResponse(str(exc), status_code=500)
        except EmptyQueryError as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except UpstreamServiceError as exc:
            logger.warning("%s", exc)
            return PlainTextResponse(f"Embedding error: {exc.body}", status_code=502)
        except RetrievalUnavailableError as exc:
            logger.error("retrieval failed: %s", exc)
            return PlainTextResponse(RETRIEVAL_UNAVAILABLE_MESSAGE, status_code=503)

        logger.info(
            "chat question_len=%d retrieved=%d grounded=%s",
            len(reply.question),
            len(reply.results),
            reply.grounded,
        )
        return StreamingResponse(
            reply.body(),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app

"""Request orchestration: question -> retrieval -> grounded prompt -> relayed stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from pydantic import BaseModel, Field, ValidationError

from rag_relay.errors import EmptyQueryError
from rag_relay.generation.client import Generator
from rag_relay.generation.prompt import GroundedRequest, PromptAssembler, Refusal
from rag_relay.ingest.embedder import Embedder
from rag_relay.relay.stream import QueueSink, StreamRelay
from rag_relay.retrieval.retriever import KVRetriever
from rag_relay.types import ScoredCandidate

logger = logging.getLogger(__name__)

GENERATION_UNAVAILABLE_MESSAGE = "The answer service is not configured right now."


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)

    @classmethod
    def parse_body(cls, raw: bytes) -> "ChatRequest":
        """Malformed or mis-shaped bodies become an empty request."""

        try:
            return cls.model_validate_json(raw or b"{}")
        except ValidationError:
            return cls()

    def question(self) -> str:
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content.strip()
        return ""


@dataclass(slots=True)
class ChatReply:
    """Pre-stream work is done; ``body()`` produces the client event stream."""

    question: str
    results: list[ScoredCandidate]
    outcome: GroundedRequest | Refusal
    source: AsyncIterator[bytes]
    relay: StreamRelay

    @property
    def grounded(self) -> bool:
        return isinstance(self.outcome, GroundedRequest)

    async def body(self) -> AsyncIterator[bytes]:
        sink = QueueSink()
        task = asyncio.create_task(self.relay.pump(self.source, sink))
        try:
            async for data in sink:
                yield data
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)


class ChatService:
    """Wires embedder, retriever, prompt assembly and the stream relay together."""

    def __init__(
        self,
        *,
        embedder: Embedder,
        retriever: KVRetriever,
        assembler: PromptAssembler | None = None,
        generator: Generator | None = None,
        relay: StreamRelay | None = None,
    ) -> None:
        self.embedder = embedder
        self.retriever = retriever
        self.assembler = assembler or PromptAssembler()
        self.generator = generator
        self.relay = relay or StreamRelay()

    async def prepare(self, messages: Sequence[ChatMessage] | ChatRequest) -> ChatReply:
        """Run every step that can fail before the response starts streaming.

        Raises:
            EmptyQueryError: no user question; nothing external was called.
            UpstreamServiceError: the query could not be embedded.
            RetrievalUnavailableError: the chunk store could not be scanned.
        """

        request = messages if isinstance(messages, ChatRequest) else ChatRequest(messages=list(messages))
        question = request.question()
        if not question:
            raise EmptyQueryError("Empty query")

        query_vector = await self.embedder.aembed_query(question)
        results = await self.retriever.retrieve(query_vector)
        outcome = self.assembler.assemble(question, results)

        if isinstance(outcome, Refusal):
            logger.info("no grounding found; answering with refusal")
            source = self.relay.synthetic(outcome.message)
        elif self.generator is None:
            logger.warning("generation service not configured; answering synthetically")
            source = self.relay.synthetic(GENERATION_UNAVAILABLE_MESSAGE)
        else:
            source = self.relay.relay(self.generator.stream(outcome))

        return ChatReply(
            question=question,
            results=results,
            outcome=outcome,
            source=source,
            relay=self.relay,
        )

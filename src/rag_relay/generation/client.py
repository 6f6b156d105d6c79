"""Streaming client for the generation service's Responses endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

import httpx

from rag_relay.config import GenerationConfig
from rag_relay.errors import UpstreamServiceError
from rag_relay.generation.prompt import GroundedRequest

logger = logging.getLogger(__name__)


class Generator(Protocol):
    """Opens a streaming generation call for a grounded request."""

    def stream(self, request: GroundedRequest) -> AsyncIterator[bytes]:
        """Yield raw event-stream bytes; raise ``UpstreamServiceError`` on a non-success status."""


class ResponsesClient:
    """Posts grounded requests with ``stream: true`` and yields the raw SSE bytes.

    The upstream connection lives exactly as long as the returned iterator:
    closing it early (client disconnect) closes the HTTP response.
    """

    def __init__(
        self,
        api_key: str,
        config: GenerationConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or GenerationConfig()
        self._api_key = api_key
        self._client = http_client or httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=httpx.Timeout(
                self.config.timeout_seconds,
                connect=self.config.connect_timeout_seconds,
            ),
        )

    def build_body(self, request: GroundedRequest) -> dict[str, object]:
        return {
            "model": self.config.model,
            "input": request.to_input(),
            "stream": True,
        }

    async def stream(self, request: GroundedRequest) -> AsyncIterator[bytes]:
        async with self._open(request) as response:
            async for chunk in response.aiter_bytes():
                yield chunk

    async def aclose(self) -> None:
        await self._client.aclose()

    @asynccontextmanager
    async def _open(self, request: GroundedRequest) -> AsyncIterator[httpx.Response]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        try:
            async with self._client.stream(
                "POST", "/responses", json=self.build_body(request), headers=headers
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamServiceError("generation", response.status_code, body[:500])
                logger.debug("generation stream opened model=%s", self.config.model)
                yield response
        except httpx.HTTPError as exc:
            raise UpstreamServiceError("generation", None, str(exc)) from exc

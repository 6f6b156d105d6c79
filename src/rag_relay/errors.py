"""Error taxonomy shared by retrieval, generation and the HTTP layer."""

from __future__ import annotations


class RagRelayError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(RagRelayError):
    """Missing credentials or store binding; fatal for the request."""


class EmptyQueryError(RagRelayError):
    """The request carried no user question."""


class UpstreamServiceError(RagRelayError):
    """The embedding or generation service answered with a non-success status."""

    def __init__(self, service: str, status_code: int | None, body: str = "") -> None:
        self.service = service
        self.status_code = status_code
        self.body = body
        message = f"{service} error"
        if status_code is not None:
            message += f" {status_code}"
        if body:
            message += f": {body}"
        super().__init__(message)


class RetrievalUnavailableError(RagRelayError):
    """Listing or fetching from the chunk store failed."""


class DimensionMismatchError(ValueError):
    """Two embedding vectors of different lengths were compared."""

    def __init__(self, left: int, right: int) -> None:
        self.left = left
        self.right = right
        super().__init__(f"embedding dimensions differ: {left} != {right}")

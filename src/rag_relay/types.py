"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat


class ChunkRecord(BaseModel):
    """A persisted chunk as stored under ``doc:<docId>:chunk:<index>``.

    Unknown fields written by other tools are ignored. A record without an
    embedding still parses; the retriever decides to skip it. NaN or infinite
    components fail validation.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str
    doc_id: str = Field(alias="docId")
    text: str
    embedding: list[FiniteFloat] | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass(slots=True)
class ParsedDocument:
    """A parsed source document before chunking."""

    doc_id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ScoredCandidate:
    """A chunk scored against one query; lives for a single request."""

    text: str
    doc_id: str
    score: float
    chunk_id: str = ""


@dataclass(slots=True)
class UpstreamEvent:
    """One blank-line delimited event parsed from the generation stream."""

    data: str
    event: str | None = None

"""Client event vocabulary and the upstream-to-client mapping."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from rag_relay.types import UpstreamEvent

logger = logging.getLogger(__name__)

TEXT_DELTA_EVENT = "response.output_text.delta"
COMPLETED_EVENT = "response.completed"
ERROR_EVENT = "error"
FAILED_EVENT = "response.failed"


@dataclass(slots=True, frozen=True)
class TextDelta:
    text: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "delta", "text": self.text}


@dataclass(slots=True, frozen=True)
class Completed:
    def to_payload(self) -> dict[str, Any]:
        return {"type": "done"}


@dataclass(slots=True, frozen=True)
class Error:
    message: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": "error", "message": self.message}


ClientEvent = TextDelta | Completed | Error


def is_terminal(event: ClientEvent) -> bool:
    return isinstance(event, (Completed, Error))


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None


class _DeltaPayload(_Payload):
    delta: str


class _ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    code: str | None = None


class _ErrorPayload(_Payload):
    message: str | None = None
    code: str | None = None
    error: _ErrorDetail | None = None


class _FailedResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: _ErrorDetail | None = None


class _FailedPayload(_Payload):
    response: _FailedResponse | None = None


def map_upstream_event(event: UpstreamEvent) -> ClientEvent | None:
    """Map one upstream event to the client vocabulary, or drop it.

    The event kind comes from the ``event:`` field, falling back to the
    ``type`` key of the JSON payload. Unknown kinds and payloads that do not
    match the expected shape return ``None``.
    """

    try:
        raw = json.loads(event.data)
    except ValueError:
        logger.debug("dropping upstream frame with non-JSON data")
        return None
    if not isinstance(raw, dict):
        return None

    kind = event.event or raw.get("type")
    try:
        if kind == TEXT_DELTA_EVENT:
            delta = _DeltaPayload.model_validate(raw).delta
            return TextDelta(text=delta) if delta else None
        if kind == COMPLETED_EVENT:
            return Completed()
        if kind == ERROR_EVENT:
            payload = _ErrorPayload.model_validate(raw)
            message = payload.message or (payload.error.message if payload.error else None)
            return Error(message=message or payload.code or "upstream error")
        if kind == FAILED_EVENT:
            failed = _FailedPayload.model_validate(raw)
            detail = failed.response.error if failed.response else None
            return Error(message=(detail.message if detail else None) or "response failed")
    except ValidationError:
        logger.debug("dropping malformed %s frame", kind)
        return None
    return None

"""Grounded prompt assembly."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rag_relay.types import ScoredCandidate

_SYSTEM_PROMPT = (
    "You are a strict RAG assistant. Use ONLY the provided context. "
    "If the answer isn't in context, say you don't know."
)
CONTEXT_SEPARATOR = "\n\n---\n\n"
INSUFFICIENT_GROUNDING_MESSAGE = (
    "I couldn't find anything in the indexed documents that answers this question."
)


@dataclass(slots=True, frozen=True)
class GroundedRequest:
    system: str
    user: str

    def to_input(self) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.user},
        ]


@dataclass(slots=True, frozen=True)
class Refusal:
    message: str = INSUFFICIENT_GROUNDING_MESSAGE


class PromptAssembler:
    """Turns a question plus ranked chunks into a grounded request or a refusal."""

    def __init__(
        self,
        *,
        system_prompt: str = _SYSTEM_PROMPT,
        refusal_message: str = INSUFFICIENT_GROUNDING_MESSAGE,
    ) -> None:
        self.system_prompt = system_prompt
        self.refusal_message = refusal_message

    def assemble(
        self, question: str, results: Sequence[ScoredCandidate]
    ) -> GroundedRequest | Refusal:
        if not results:
            return Refusal(message=self.refusal_message)

        context = CONTEXT_SEPARATOR.join(
            f"[#{index} {item.doc_id}] {item.text}"
            for index, item in enumerate(results, start=1)
        )
        return GroundedRequest(
            system=self.system_prompt,
            user=f"Question: {question}\n\nContext:\n{context}",
        )

"""Parsing interfaces and concrete parsers for ingestion sources."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from pathlib import Path

from rag_relay.types import ParsedDocument

_TRAILING_SPACE_BEFORE_NEWLINE = re.compile(r"\s+\n")


class Parser(ABC):
    """Base parser interface used by the ingest pipeline."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        """Parse a file into normalized text + metadata."""


class PdfParser(Parser):
    """Extracts page text from PDF files with ``pypdf``."""

    extensions = (".pdf",)

    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        from pypdf import PdfReader

        reader = PdfReader(str(path))
        text = "\n".join(page.extract_text() or "" for page in reader.pages)
        return ParsedDocument(
            doc_id=doc_id or path.stem,
            text=normalize_text(text),
            metadata={"source": str(path), "format": "pdf", "pages": len(reader.pages)},
        )


class TextParser(Parser):
    """Parser for plain text and markdown documents."""

    extensions = (".txt", ".md", ".markdown")

    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        text = path.read_text(encoding="utf-8")
        return ParsedDocument(
            doc_id=doc_id or path.stem,
            text=normalize_text(text),
            metadata={"source": str(path), "format": path.suffix.lstrip(".").lower()},
        )


class ParserRegistry:
    """Maps file extension to parser implementation."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [PdfParser(), TextParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def supports(self, path: str | Path) -> bool:
        return Path(path).suffix.lower() in self._parsers

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> ParsedDocument:
        file_path = Path(path)
        parser = self._parsers.get(file_path.suffix.lower())
        if parser is None:
            raise ValueError(f"No parser registered for extension: {file_path.suffix}")
        return parser.parse(file_path, doc_id=doc_id)


def normalize_text(text: str) -> str:
    return _TRAILING_SPACE_BEFORE_NEWLINE.sub("\n", text).strip()

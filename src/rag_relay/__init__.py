"""RAG chat relay package."""

from .config import ChunkingConfig, GenerationConfig, RetrievalConfig, Settings

__all__ = ["ChunkingConfig", "GenerationConfig", "RetrievalConfig", "Settings"]

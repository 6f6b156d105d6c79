import pytest
from pydantic import ValidationError

from rag_relay.config import RetrievalConfig, Settings


def test_defaults_match_document_namespace() -> None:
    config = RetrievalConfig()

    assert config.key_prefix == "doc:"
    assert config.top_k == 5
    assert config.max_pages == 20


def test_retrieval_bounds_are_validated() -> None:
    with pytest.raises(ValidationError):
        RetrievalConfig(max_pages=0)
    with pytest.raises(ValidationError):
        RetrievalConfig(min_score=1.5)


def test_settings_read_nested_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.setenv("RAG_RELAY_RETRIEVAL__TOP_K", "8")
    monkeypatch.setenv("RAG_RELAY_RETRIEVAL__KEY_PREFIX", "doc:Week1:")
    monkeypatch.setenv("RAG_RELAY_GENERATION__MODEL", "gpt-test")

    settings = Settings()

    assert settings.api_key() == "sk-env"
    assert settings.retrieval.top_k == 8
    assert settings.retrieval.key_prefix == "doc:Week1:"
    assert settings.generation.model == "gpt-test"


def test_blank_api_key_counts_as_missing(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "   ")

    assert Settings().api_key() is None
    assert "sk-secret" not in repr(Settings(OPENAI_API_KEY="sk-secret"))

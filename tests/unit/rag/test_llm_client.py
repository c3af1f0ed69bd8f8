"""Tests for LiteLLM client wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from chunkdex.rag.llm_client import (
    EmbeddingError,
    TokenCounter,
    approximate_token_count,
    count_tokens,
    embed_batch,
    env_var_for,
    provider_of,
    validate_api_key,
)


# ------------------------------------------------------------------
# validate_api_key
# ------------------------------------------------------------------


def test_validate_api_key_raises_if_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="OPENAI_API_KEY"):
        validate_api_key("openai/text-embedding-3-small")


def test_validate_api_key_passes_if_set(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    validate_api_key("openai/text-embedding-3-small")  # should not raise


def test_validate_api_key_voyage(monkeypatch):
    monkeypatch.delenv("VOYAGE_API_KEY", raising=False)
    with pytest.raises(EnvironmentError, match="VOYAGE_API_KEY"):
        validate_api_key("voyage/voyage-3")


def test_validate_api_key_ollama_no_key_required():
    # Ollama is local; no env var needed
    validate_api_key("ollama/nomic-embed-text")


def test_validate_api_key_bare_model_treated_as_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(EnvironmentError):
        validate_api_key("text-embedding-3-small")


def test_provider_of():
    assert provider_of("Cohere/embed-english-v3.0") == "cohere"
    assert provider_of("text-embedding-3-small") == "openai"


def test_env_var_for():
    assert env_var_for("together_ai") == "TOGETHERAI_API_KEY"
    assert env_var_for("OpenAI") == "OPENAI_API_KEY"
    assert env_var_for("ollama") is None
    assert env_var_for("myprovider") == "MYPROVIDER_API_KEY"


# ------------------------------------------------------------------
# embed_batch()
# ------------------------------------------------------------------


def test_embed_batch_returns_vectors_in_order():
    mock_response = MagicMock()
    mock_response.data = [{"embedding": [0.1, 0.2]}, {"embedding": [0.3, 0.4]}]

    with patch("chunkdex.rag.llm_client.litellm.embedding", return_value=mock_response):
        result = embed_batch("openai/text-embedding-3-small", ["a", "b"])

    assert result == [[0.1, 0.2], [0.3, 0.4]]


def test_embed_batch_passes_params_to_litellm():
    mock_response = MagicMock()
    mock_response.data = [{"embedding": [0.0]}]

    with patch("chunkdex.rag.llm_client.litellm.embedding", return_value=mock_response) as mock_e:
        embed_batch("openai/text-embedding-3-small", ["test text"], num_retries=2)

    call_kwargs = mock_e.call_args.kwargs
    assert call_kwargs["model"] == "openai/text-embedding-3-small"
    assert call_kwargs["input"] == ["test text"]
    assert call_kwargs["num_retries"] == 2


def test_embed_batch_wraps_provider_errors():
    boom = RuntimeError("APIConnectionError")
    with patch("chunkdex.rag.llm_client.litellm.embedding", side_effect=boom):
        with pytest.raises(EmbeddingError, match="APIConnectionError") as exc_info:
            embed_batch("openai/text-embedding-3-small", ["a"])
    assert exc_info.value.__cause__ is boom


# ------------------------------------------------------------------
# count_tokens()
# ------------------------------------------------------------------


def test_count_tokens_uses_litellm():
    with patch("chunkdex.rag.llm_client.litellm.token_counter", return_value=42):
        result = count_tokens("gpt-4o", "some text")
    assert result == 42


def test_count_tokens_fallback_on_error():
    with patch(
        "chunkdex.rag.llm_client.litellm.token_counter", side_effect=Exception("unsupported")
    ):
        result = count_tokens("unknown/model", "a" * 100)
    # 100 chars / 4 = 25 tokens (approx)
    assert result == 25


def test_count_tokens_empty_text_is_zero():
    with patch("chunkdex.rag.llm_client.litellm.token_counter") as mock_t:
        assert count_tokens("gpt-4o", "") == 0
    mock_t.assert_not_called()


def test_approximate_token_count():
    assert approximate_token_count("abc") == 0
    assert approximate_token_count("a" * 40) == 10


# ------------------------------------------------------------------
# TokenCounter
# ------------------------------------------------------------------


def test_token_counter_memoizes():
    counter = TokenCounter("gpt-4o")
    with patch("chunkdex.rag.llm_client.litellm.token_counter", return_value=7) as mock_t:
        assert counter("hello world") == 7
        assert counter.count("hello world") == 7
    assert mock_t.call_count == 1


def test_token_counter_is_deterministic_per_model():
    with patch("chunkdex.rag.llm_client.litellm.token_counter", side_effect=lambda model, text: len(text)):
        a, b = TokenCounter("gpt-4o"), TokenCounter("gpt-4o")
        assert a("same text") == b("same text") == 9

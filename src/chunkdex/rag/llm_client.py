"""LiteLLM client wrapper: API key validation, batched embeddings, token counting.

All embedding and tokenizer calls route through this module. LiteLLM's built-in
retry is used for embeddings (``num_retries``, exponential backoff).
"""

from __future__ import annotations

import os

import litellm

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

DEFAULT_TOKENIZER_MODEL = "gpt-4o"


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "huggingface": "HUGGINGFACE_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
}


class EmbeddingError(RuntimeError):
    """An embedding request failed after LiteLLM's retries."""


def provider_of(model: str) -> str:
    """Return the provider prefix of a 'provider/model' string ('openai' if none)."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def env_var_for(provider: str) -> str | None:
    """Env var holding the API key for *provider*; None when no key is needed."""
    provider = provider.lower()
    if provider in _PROVIDER_ENV:
        return _PROVIDER_ENV[provider]
    return f"{provider.upper()}_API_KEY"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return  # No key required (e.g. ollama) or unknown provider

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed_batch(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Call litellm.embedding() for a batch of texts. Returns one vector per text.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        texts: Texts to embed, in order.
        num_retries: Number of retries on transient errors.

    Returns:
        Embeddings as lists of floats, in the same order as *texts*.

    Raises:
        EmbeddingError: On connection, auth, rate-limit or model errors that
            persist after retries.
    """
    try:
        response = litellm.embedding(
            model=model,
            input=list(texts),
            num_retries=num_retries,
        )
    except Exception as exc:
        raise EmbeddingError(f"Embedding request to '{model}' failed: {exc}") from exc
    return [item["embedding"] for item in response.data]


# ------------------------------------------------------------------
# Token counting
# ------------------------------------------------------------------


def approximate_token_count(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token. Sizing only."""
    return len(text) // 4


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to a character-based approximation (4 chars ≈ 1 token) if the
    model is not supported by litellm.token_counter().
    """
    if not text:
        return 0
    try:
        return int(litellm.token_counter(model=model, text=text))
    except Exception:
        return approximate_token_count(text)


class TokenCounter:
    """Deterministic text → token count mapping for a single tokenizer model.

    Counts are memoized per text; the same blocks are measured repeatedly while
    splitting and assembling.
    """

    def __init__(self, model: str = DEFAULT_TOKENIZER_MODEL) -> None:
        self.model = model
        self._cache: dict[str, int] = {}

    def count(self, text: str) -> int:
        cached = self._cache.get(text)
        if cached is not None:
            return cached
        n = count_tokens(self.model, text)
        self._cache[text] = n
        return n

    __call__ = count

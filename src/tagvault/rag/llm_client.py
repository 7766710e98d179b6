"""LiteLLM client wrapper: embeddings, streaming completions, API key validation.

All model calls in the ingest and generation paths route through this module,
so tests patch one seam (``tagvault.rag.llm_client.litellm``).
LiteLLM's built-in retry is used for embeddings (num_retries=3, exponential
backoff). Streaming completions are not retried: fragments already handed to
the consumer cannot be taken back.
"""

from __future__ import annotations

import os
from typing import Any, AsyncIterator, Iterator

import litellm

litellm.suppress_debug_info = True


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed_many(model: str, texts: list[str], num_retries: int = 3) -> list[list[float]]:
    """Embed a batch of texts in one call. Returns vectors in input order."""
    if not texts:
        return []
    response = litellm.embedding(model=model, input=texts, num_retries=num_retries)
    data = sorted(response.data, key=lambda d: _field(d, "index", 0))
    return [list(_field(d, "embedding")) for d in data]


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Embed a single text (the retrieval query)."""
    return embed_many(model, [text], num_retries=num_retries)[0]


def stream_completion(
    model: str,
    messages: list[dict],
    temperature: float = 0.7,
) -> Iterator[Any]:
    """Open a streaming completion. Returns LiteLLM's chunk iterator."""
    return litellm.completion(
        model=model,
        messages=messages,
        temperature=temperature,
        stream=True,
    )


async def astream_completion(
    model: str,
    messages: list[dict],
    temperature: float = 0.7,
) -> AsyncIterator[Any]:
    """Async twin of stream_completion()."""
    return await litellm.acompletion(
        model=model,
        messages=messages,
        temperature=temperature,
        stream=True,
    )


def delta_text(chunk: Any) -> str:
    """Return the text delta carried by one streaming chunk ('' for role/stop chunks)."""
    choices = _field(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = _field(choices[0], "delta", None)
    if delta is None:
        return ""
    return _field(delta, "content", None) or ""


def _field(obj: Any, name: str, default: Any = None) -> Any:
    # LiteLLM returns pydantic objects, but providers sometimes hand back dicts
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)

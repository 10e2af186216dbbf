"""LiteLLM embedder with bounded retry.

Transient provider failures (rate limit, connection, timeout, 5xx) are
retried with exponential backoff via tenacity. Anything else, or an
exhausted retry budget, surfaces as :class:`EmbeddingError`.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Protocol

import litellm
import tenacity

from strata.config import RetryCfg
from strata.errors import EmbeddingError

logger = logging.getLogger(__name__)

# Suppress LiteLLM's verbose debug output
litellm.suppress_debug_info = True

_PROVIDER_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}

_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


class Embedder(Protocol):
    """What the preparation stage needs from an embedding backend."""

    @property
    def model_name(self) -> str: ...

    @property
    def dimensions(self) -> int: ...

    def embed(self, text: str) -> list[float]: ...

    def batch_embed(self, texts: Sequence[str]) -> list[list[float]]: ...


def is_retryable_embedding_error(exc: BaseException) -> bool:
    """Return True for provider errors worth another attempt."""
    return isinstance(exc, _RETRYABLE_ERRORS)


def log_embedding_retry(retry_state: tenacity.RetryCallState) -> None:
    """Log an embedding retry with the failing exception."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if exc is None:
        return
    logger.warning(
        "Embedding attempt %d failed: %s: %s",
        retry_state.attempt_number,
        type(exc).__name__,
        exc,
    )


class LiteLLMEmbedder:
    """Embed text through ``litellm.embedding()``.

    Args:
        model: LiteLLM model string, e.g. ``openai/text-embedding-3-small``.
        dimensions: Expected vector width; responses of another width are
            rejected.
        retry: Backoff settings (defaults: 3 attempts, 0.5 s base, 8 s cap).
    """

    def __init__(self, model: str, dimensions: int, retry: RetryCfg | None = None) -> None:
        self._model = model
        self._dimensions = dimensions
        retry = retry or RetryCfg()
        self._retrying = tenacity.Retrying(
            retry=tenacity.retry_if_exception(is_retryable_embedding_error),
            stop=tenacity.stop_after_attempt(retry.max_attempts),
            wait=tenacity.wait_exponential(multiplier=retry.base_delay, max=retry.max_delay),
            before_sleep=log_embedding_retry,
            reraise=True,
        )
        self._key_checked = False

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def embed(self, text: str) -> list[float]:
        """Return the embedding vector for a single *text*."""
        return self.batch_embed([text])[0]

    def batch_embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per input text, in input order.

        Raises:
            EmbeddingError: On missing credentials, exhausted retries, or a
                response whose vector count or width does not match.
        """
        if not texts:
            return []
        self._check_api_key()

        try:
            response = self._retrying(litellm.embedding, model=self._model, input=list(texts))
        except Exception as exc:
            raise EmbeddingError(
                f"Embedding request to '{self._model}' failed: {type(exc).__name__}: {exc}"
            ) from exc

        vectors = _vectors_in_order(response)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding response has {len(vectors)} vectors for {len(texts)} inputs"
            )
        for vector in vectors:
            if len(vector) != self._dimensions:
                raise EmbeddingError(
                    f"Model '{self._model}' returned {len(vector)}-dimensional vectors, "
                    f"expected {self._dimensions}"
                )
        return vectors

    def _check_api_key(self) -> None:
        """Raise EmbeddingError if the provider's API key env var is unset."""
        if self._key_checked:
            return
        provider = self._model.split("/")[0].lower() if "/" in self._model else ""
        required_env = _PROVIDER_ENV.get(provider)
        if required_env and not os.environ.get(required_env):
            raise EmbeddingError(
                f"No API key found for provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )
        self._key_checked = True


def _vectors_in_order(response: object) -> list[list[float]]:
    """Extract vectors from a LiteLLM response, ordered by their ``index``."""
    try:
        items = list(response.data)  # type: ignore[attr-defined]
        indexed = [(item.get("index", pos), item["embedding"]) for pos, item in enumerate(items)]
    except (AttributeError, KeyError, TypeError) as exc:
        raise EmbeddingError(f"Malformed embedding response: {exc}") from exc
    return [list(vector) for _, vector in sorted(indexed, key=lambda pair: pair[0])]

"""Local embedding generation using sentence-transformers."""

import asyncio
import logging
import math
from typing import Any

from ..errors import TransientIOError, ValidationError
from ..retry import DEFAULT_RETRY_POLICY, RetryPolicy, retry_async
from ..settings import DEFAULT_MODEL

log = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = 384
MAX_TEXT_CHARS = 8000
# Normalized embeddings never get near this; larger values mean a decode mismatch.
MAX_ABS_COMPONENT = 100.0


def validate_embedding(raw: Any) -> list[float]:
    """Coerce a provider payload into a finite float vector.

    Raises:
        TransientIOError: payload is not a sequence of numbers.
        ValidationError: empty vector, non-finite or out-of-range values.
    """
    if hasattr(raw, "tolist"):
        raw = raw.tolist()
    if not isinstance(raw, (list, tuple)):
        raise TransientIOError(f"Unknown embedding format: {type(raw).__name__}")
    try:
        values = [float(v) for v in raw]
    except (TypeError, ValueError) as exc:
        raise TransientIOError(f"Malformed embedding payload: {exc}") from exc

    if not values:
        raise ValidationError("Embedding is empty")
    if any(not math.isfinite(v) for v in values):
        raise ValidationError("Embedding contains invalid values (NaN/Infinity)")
    max_abs = max(abs(v) for v in values)
    if max_abs > MAX_ABS_COMPONENT:
        raise ValidationError(f"Embedding magnitude too large (max_abs={max_abs:.2e})")
    return values


class Embedder:
    """Generate embeddings using a local sentence-transformers model.

    The model call is blocking, so the async methods run it in a worker
    thread and wrap it in the shared retry policy.
    """

    def __init__(self, model: str = DEFAULT_MODEL, retry: RetryPolicy = DEFAULT_RETRY_POLICY):
        from sentence_transformers import SentenceTransformer

        log.info(f"Loading embedding model: {model}")
        self.model = SentenceTransformer(model)
        self.dimensions = self.model.get_sentence_embedding_dimension()
        self.retry = retry
        log.info(f"Model loaded. Dimensions: {self.dimensions}")

    def _encode_one(self, text: str) -> list[float]:
        embedding = self.model.encode(text[:MAX_TEXT_CHARS], normalize_embeddings=True)
        return validate_embedding(embedding)

    def _encode_many(self, texts: list[str], batch_size: int) -> list[list[float]]:
        embeddings = self.model.encode(
            [t[:MAX_TEXT_CHARS] for t in texts],
            batch_size=batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [validate_embedding(e) for e in embeddings]

    async def embed(self, text: str) -> list[float]:
        """Embed one text, retrying transient and validation failures."""
        return await retry_async(
            lambda: asyncio.to_thread(self._encode_one, text),
            operation="embed",
            policy=self.retry,
        )

    async def embed_batch(self, texts: list[str], batch_size: int = 32) -> list[list[float]]:
        """Embed many texts; output order matches input order."""
        if not texts:
            return []
        return await retry_async(
            lambda: asyncio.to_thread(self._encode_many, list(texts), batch_size),
            operation="embed_batch",
            policy=self.retry,
        )

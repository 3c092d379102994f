"""
Embedding providers.

Two interchangeable clients turn passage text into vectors aligned by
position with their input: the OpenAI embeddings API, and a local
sentence-transformers model that avoids extra API usage. Which one is used
comes from ``EMBED_PROVIDER``; ``build_embedding_client`` returns ``None``
when nothing is configured so callers can degrade instead of failing.
"""
from typing import List, Optional, Sequence

import numpy as np

from .config import (
    EMBED_BATCH_SIZE,
    EMBED_MODEL,
    EMBED_PROVIDER,
    OPENAI_API_KEY,
    OPENAI_EMBED_DIMENSIONS,
    OPENAI_EMBED_MODEL,
)
from .errors import EmbeddingError
from .logging_config import logger


class EmbeddingClient:
    """Interface every provider implements."""

    provider = "base"

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        raise NotImplementedError

    def embed_query(self, text: str) -> List[float]:
        return self.embed([text])[0]


class OpenAIEmbeddingClient(EmbeddingClient):
    """Batched calls to the OpenAI embeddings endpoint."""

    provider = "openai"

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        model: str = OPENAI_EMBED_MODEL,
        dimensions: Optional[int] = OPENAI_EMBED_DIMENSIONS,
        batch_size: int = EMBED_BATCH_SIZE,
        client=None,
    ):
        if client is None:
            from openai import OpenAI
            client = OpenAI(api_key=api_key)
        self._client = client
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []

        vectors: List[List[float]] = []
        try:
            for start in range(0, len(texts), self.batch_size):
                batch = list(texts[start:start + self.batch_size])
                kwargs = {"model": self.model, "input": batch}
                if self.dimensions:
                    kwargs["dimensions"] = self.dimensions
                response = self._client.embeddings.create(**kwargs)
                # The API may return items out of order
                items = sorted(response.data, key=lambda item: item.index)
                vectors.extend(list(item.embedding) for item in items)
        except Exception as e:
            raise EmbeddingError(f"OpenAI embedding request failed: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors


class SentenceTransformerEmbeddingClient(EmbeddingClient):
    """Local sentence-transformers model, loaded once per process."""

    provider = "local"

    def __init__(self, model_name: str = EMBED_MODEL):
        self.model_name = model_name
        self._model = None

    def preload_model(self):
        """Preload the embedding model on startup to avoid first-request delay."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            logger.info("Loading embedding model", model=self.model_name)

            # Explicit tokenizer settings avoid a FutureWarning
            self._model = SentenceTransformer(
                self.model_name,
                tokenizer_kwargs={"clean_up_tokenization_spaces": False},
            )

            # Warm up with a test embedding
            self._model.encode(["test"], normalize_embeddings=True, show_progress_bar=False)
            logger.info("Embedding model loaded", model=self.model_name)
        return self._model

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            model = self.preload_model()
            vecs = model.encode(list(texts), normalize_embeddings=True, show_progress_bar=False)
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {e}") from e
        if isinstance(vecs, np.ndarray):
            return vecs.tolist()
        return [list(v) for v in vecs]


def build_embedding_client(provider: str = EMBED_PROVIDER) -> Optional[EmbeddingClient]:
    """
    Create the configured embedding client.

    Returns:
        The client, or None when no provider is configured (``none``, an
        unknown name, or ``openai`` without an API key).
    """
    if provider == "openai":
        if not OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY not set; embeddings disabled")
            return None
        return OpenAIEmbeddingClient()
    if provider == "local":
        return SentenceTransformerEmbeddingClient()
    if provider not in ("", "none"):
        logger.warning("Unknown embedding provider; embeddings disabled", provider=provider)
    return None

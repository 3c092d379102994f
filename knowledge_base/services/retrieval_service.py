"""
Retrieval engine.
Embeds a query, finds the closest chunks the caller may see, and renders
them as a citation-bearing context block for a chat model.
"""
import math
from dataclasses import dataclass, field
from time import perf_counter
from typing import List, Optional, Sequence

from ..auth import OwnerScope
from ..chunking import estimate_tokens
from ..config import (
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    MAX_CONTEXT_TOKENS,
    MAX_QUERY_LENGTH,
    MAX_SEARCH_LIMIT,
    MAX_SIMILARITY_THRESHOLD,
    MIN_SEARCH_LIMIT,
    MIN_SIMILARITY_THRESHOLD,
)
from ..embedding import EmbeddingClient
from ..errors import ProviderUnavailableError, ValidationError
from ..logging_config import logger
from .document_store import ChunkMatch, DocumentStore

CONTEXT_HEADER = "## Relevant Information from Documents"
NO_RESULTS_CONTEXT = f"{CONTEXT_HEADER}\n\nNo relevant documents found in your knowledge base."
SEARCH_UNAVAILABLE_CONTEXT = "Search is not available. No embedding provider is configured."

# Reserved for the header when budgeting the context
_HEADER_TOKENS = 50


@dataclass
class SearchResponse:
    results: List[ChunkMatch] = field(default_factory=list)
    context: str = NO_RESULTS_CONTEXT
    count: int = 0


def _as_number(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise ValidationError(f"{name} must be a number")
    return value


def validate_query(query) -> str:
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query string required")
    query = query.strip()
    if len(query) > MAX_QUERY_LENGTH:
        raise ValidationError(f"Query too long (max {MAX_QUERY_LENGTH} characters)")
    return query


def normalize_limit(limit) -> int:
    """Clamp to [MIN_SEARCH_LIMIT, MAX_SEARCH_LIMIT]; None means the default."""
    if limit is None:
        return DEFAULT_SEARCH_LIMIT
    value = _as_number(limit, "limit")
    return int(max(MIN_SEARCH_LIMIT, min(MAX_SEARCH_LIMIT, value)))


def normalize_threshold(threshold) -> float:
    """Clamp to [MIN_SIMILARITY_THRESHOLD, MAX_SIMILARITY_THRESHOLD]; None means the default."""
    if threshold is None:
        return DEFAULT_SIMILARITY_THRESHOLD
    value = _as_number(threshold, "threshold")
    return float(max(MIN_SIMILARITY_THRESHOLD, min(MAX_SIMILARITY_THRESHOLD, value)))


def rank_results(candidates: Sequence[ChunkMatch], limit: int, threshold: float) -> List[ChunkMatch]:
    """Best first, nothing below ``threshold``, at most ``limit``."""
    ranked = sorted(candidates, key=lambda m: m.similarity, reverse=True)
    return [m for m in ranked if m.similarity >= threshold][:limit]


def _section(position: int, r: ChunkMatch) -> str:
    return (
        f'### [{position}] From "{r.document_name}" '
        f"(chunk {r.chunk_index}, relevance: {r.similarity * 100:.0f}%)\n"
        f"{r.content}\n\n"
    )


def fit_to_budget(results: Sequence[ChunkMatch], max_tokens: int = MAX_CONTEXT_TOKENS) -> List[ChunkMatch]:
    """Leading results whose sections fit in ``max_tokens`` together with the header."""
    kept = []
    used = _HEADER_TOKENS
    for i, r in enumerate(results, 1):
        cost = estimate_tokens(_section(i, r))
        if used + cost > max_tokens:
            break
        kept.append(r)
        used += cost
    return kept


def format_context(results: Sequence[ChunkMatch], max_tokens: int = MAX_CONTEXT_TOKENS) -> str:
    """
    Render results as a numbered context block for an LLM prompt.

    Sections are added in rank order until the next one would push the
    estimated token count past ``max_tokens``.

    Example:
        ## Relevant Information from Documents

        ### [1] From "Handbook" (chunk 3, relevance: 82%)
        Employees accrue leave monthly...
    """
    kept = fit_to_budget(results, max_tokens)
    if not kept:
        return NO_RESULTS_CONTEXT

    sections = [_section(i, r) for i, r in enumerate(kept, 1)]
    return (CONTEXT_HEADER + "\n\n" + "".join(sections)).rstrip() + "\n"


class RetrievalEngine:
    def __init__(
        self,
        store: DocumentStore,
        embedder: Optional[EmbeddingClient],
        max_context_tokens: int = MAX_CONTEXT_TOKENS,
    ):
        self.store = store
        self.embedder = embedder
        self.max_context_tokens = max_context_tokens

    def search(
        self,
        query: str,
        scope: OwnerScope,
        limit=None,
        threshold=None,
    ) -> SearchResponse:
        """
        Semantic search over the caller's ready documents.

        Args:
            query: Free text, at most MAX_QUERY_LENGTH characters
            scope: Caller identity; only documents it may read are searched
            limit: Maximum results (clamped to 1..20, default 5)
            threshold: Minimum cosine similarity (clamped to 0.3..0.95, default 0.4)

        Returns:
            Results best first, the rendered context and the result count.
            Without an embedding provider the results are empty and the
            context explains why.

        Raises:
            ValidationError: Bad query, limit or threshold
            ProviderUnavailableError: The embedding provider call failed
        """
        query = validate_query(query)
        limit = normalize_limit(limit)
        threshold = normalize_threshold(threshold)

        if self.embedder is None:
            logger.warning("Search requested without an embedding provider", user_id=scope.user_id)
            return SearchResponse(results=[], context=SEARCH_UNAVAILABLE_CONTEXT, count=0)

        t = perf_counter()
        try:
            query_vector = self.embedder.embed_query(query)
        except Exception as e:
            logger.error("Query embedding failed", error=str(e))
            raise ProviderUnavailableError("Embedding provider unavailable") from e

        # Threshold is applied to 2x limit candidates
        candidates = self.store.similarity_search(query_vector, scope, limit * 2)
        # Only results that fit in the context are returned
        results = fit_to_budget(rank_results(candidates, limit, threshold), self.max_context_tokens)

        logger.info(
            "Search completed",
            user_id=scope.user_id,
            candidates=len(candidates),
            results=len(results),
            limit=limit,
            threshold=threshold,
            duration_ms=round((perf_counter() - t) * 1000, 2),
        )
        return SearchResponse(
            results=results,
            context=format_context(results, self.max_context_tokens),
            count=len(results),
        )

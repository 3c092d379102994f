"""
Exception hierarchy for the knowledge base.

Every error a caller can see carries the HTTP status it maps to, so the
FastAPI exception handler in ``main`` can render it without a lookup table.
Pipeline-internal failures (``PipelineFailure``, ``StaleRunError``) are
recorded on the document or swallowed by the run; they never reach a request.
"""
from typing import Any, Dict, Optional


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""

    status_code = 500

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class ValidationError(KnowledgeBaseError):
    """Bad input rejected before any state mutation (MIME type, size, query, limits)."""

    status_code = 400


class AuthorizationError(KnowledgeBaseError):
    """Caller can see the document but is not allowed to act on it."""

    status_code = 403


class NotFoundError(KnowledgeBaseError):
    """Unknown document, or one the caller cannot see."""

    status_code = 404


class PipelineFailure(KnowledgeBaseError):
    """Ingestion could not produce a usable document; stored as its error message."""


class StaleRunError(KnowledgeBaseError):
    """An ingestion run was overtaken by a reprocess request and must not write."""

    status_code = 409


class EmbeddingError(KnowledgeBaseError):
    """The embedding provider call failed."""

    status_code = 502


class ProviderUnavailableError(KnowledgeBaseError):
    """The embedding provider failed while serving a synchronous query."""

    status_code = 503

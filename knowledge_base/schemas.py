"""
Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class DocumentOut(BaseModel):
    """A document as shown to its owner or organization."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    user_id: str
    organization_id: Optional[str] = None
    name: str
    original_name: Optional[str] = None
    mime_type: str
    size_bytes: int
    status: str
    chunk_count: int
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="doc_metadata")
    created_at: datetime
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class ChunkOut(BaseModel):
    """A stored chunk; the vector itself is never returned."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    chunk_index: int
    content: str
    token_count: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="chunk_metadata")
    has_embedding: bool = False


class DocumentDetailOut(DocumentOut):
    chunks: List[ChunkOut] = Field(default_factory=list)


class DocumentListOut(BaseModel):
    documents: List[DocumentOut]
    supported_types: List[str]


class SearchBody(BaseModel):
    """
    Request body for semantic search.

    Fields are left untyped: the retrieval engine validates them and reports
    problems as 400 errors. Numeric limit and threshold are clamped, not rejected.
    """
    query: Any = Field(None, description="Free-text query, at most 1000 characters")
    limit: Any = Field(None, description="Maximum results (1-20, default 5)")
    threshold: Any = Field(None, description="Minimum similarity (0.3-0.95, default 0.4)")


class SearchResultOut(BaseModel):
    """One matching chunk with its source document."""
    model_config = ConfigDict(from_attributes=True)

    chunk_id: str
    document_id: str
    document_name: str
    chunk_index: int
    content: str
    similarity: float
    metadata: Optional[Dict[str, Any]] = None


class SearchResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    results: List[SearchResultOut]
    context: str
    count: int

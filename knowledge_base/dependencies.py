"""
FastAPI dependency wiring.
Shared collaborators are built once per process; tests swap them through
``app.dependency_overrides``.
"""
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from .db import SessionLocal
from .embedding import EmbeddingClient, build_embedding_client
from .services.document_store import DocumentStore
from .services.ingestion_service import IngestionPipeline
from .services.retrieval_service import RetrievalEngine
from .storage import LocalFileStorage


@lru_cache
def get_store() -> DocumentStore:
    return DocumentStore(SessionLocal)


@lru_cache
def get_embedding_client() -> Optional[EmbeddingClient]:
    return build_embedding_client()


@lru_cache
def get_storage() -> LocalFileStorage:
    return LocalFileStorage()


def get_pipeline(
    store: DocumentStore = Depends(get_store),
    embedder: Optional[EmbeddingClient] = Depends(get_embedding_client),
    storage: LocalFileStorage = Depends(get_storage),
) -> IngestionPipeline:
    return IngestionPipeline(store, embedder, storage)


def get_retrieval_engine(
    store: DocumentStore = Depends(get_store),
    embedder: Optional[EmbeddingClient] = Depends(get_embedding_client),
) -> RetrievalEngine:
    return RetrievalEngine(store, embedder)

"""Shared pytest fixtures for all test suites."""

import re
from typing import List, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from knowledge_base.auth import OwnerScope
from knowledge_base.chunking import Chunk, estimate_tokens
from knowledge_base.embedding import EmbeddingClient
from knowledge_base.errors import EmbeddingError
from knowledge_base.models import Base
from knowledge_base.services.document_store import DocumentDraft, DocumentStore
from knowledge_base.services.ingestion_service import IngestionPipeline
from knowledge_base.storage import LocalFileStorage

VOCABULARY = ("vacation", "policy", "revenue", "report", "security", "password")


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: exercises the HTTP surface end to end")
    config.addinivalue_line("markers", "postgres: needs DATABASE_URL pointing at Postgres with pgvector")


class FakeEmbeddingClient(EmbeddingClient):
    """Deterministic bag-of-words vectors: one dimension per vocabulary word plus one for the rest."""

    provider = "fake"

    def __init__(self, vocabulary: Sequence[str] = VOCABULARY):
        self.vocabulary = list(vocabulary)
        self.calls: List[List[str]] = []

    def vector(self, text: str) -> List[float]:
        vec = [0.0] * (len(self.vocabulary) + 1)
        for word in re.findall(r"\w+", text.lower()):
            if word in self.vocabulary:
                vec[self.vocabulary.index(word)] += 1.0
            else:
                vec[-1] += 1.0
        return vec

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self.vector(t) for t in texts]


class FailingEmbeddingClient(EmbeddingClient):
    """Provider that is configured but always errors."""

    provider = "failing"

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        raise EmbeddingError("provider down")


class StaticQueryEmbeddingClient(EmbeddingClient):
    """Returns the same vector for every text; used to aim queries at known chunk vectors."""

    provider = "static"

    def __init__(self, vector: Sequence[float]):
        self._vector = list(vector)

    def embed(self, texts: Sequence[str]) -> List[List[float]]:
        return [list(self._vector) for _ in texts]


# ==================== Database ====================

@pytest.fixture
def engine():
    """In-memory SQLite shared across threads (background tasks run on a worker thread)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> DocumentStore:
    return DocumentStore(session_factory)


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "files")


# ==================== Collaborators ====================

@pytest.fixture
def embedder() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def failing_embedder() -> FailingEmbeddingClient:
    return FailingEmbeddingClient()


@pytest.fixture
def static_embedder():
    """Factory for clients that embed every text as the given vector."""
    return StaticQueryEmbeddingClient


@pytest.fixture
def pipeline(store, embedder, storage) -> IngestionPipeline:
    return IngestionPipeline(store, embedder, storage)


# ==================== Callers ====================

@pytest.fixture
def alice() -> OwnerScope:
    return OwnerScope(user_id="alice", organization_id="acme")


@pytest.fixture
def bob() -> OwnerScope:
    """Same organization as alice."""
    return OwnerScope(user_id="bob", organization_id="acme")


@pytest.fixture
def carol() -> OwnerScope:
    """Different organization."""
    return OwnerScope(user_id="carol", organization_id="globex")


# ==================== Builders ====================

@pytest.fixture
def make_document(store):
    """Create a pending document directly in the store."""

    def _make(scope: OwnerScope, name: str = "notes", shared: bool = False, **kwargs):
        draft = DocumentDraft(
            user_id=scope.user_id,
            organization_id=scope.organization_id if shared else None,
            name=name,
            original_name=kwargs.pop("original_name", f"{name}.txt"),
            mime_type=kwargs.pop("mime_type", "text/plain"),
            size_bytes=kwargs.pop("size_bytes", 100),
            **kwargs,
        )
        return store.create(draft)

    return _make


@pytest.fixture
def make_ready_document(store, make_document):
    """
    Create a ready document whose chunks carry the given vectors.

    ``items`` is a list of (content, vector-or-None) pairs.
    """

    def _make(scope: OwnerScope, items, name: str = "notes", shared: bool = False):
        doc = make_document(scope, name=name, shared=shared)
        store.begin_processing(doc.id, doc.generation)
        chunks = [
            Chunk(content=content, index=i, token_count=estimate_tokens(content),
                  start_char=0, end_char=len(content))
            for i, (content, _) in enumerate(items)
        ]
        store.complete_run(doc.id, doc.generation, chunks, None)
        for row, (_, vector) in zip(store.list_chunks(doc.id), items):
            if vector is not None:
                store.set_chunk_embedding(row.id, vector)
        return store.load(doc.id)

    return _make

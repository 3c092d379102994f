"""Fixtures for HTTP-level tests."""

import pytest
from fastapi.testclient import TestClient

from knowledge_base.dependencies import get_embedding_client, get_pipeline, get_storage, get_store
from knowledge_base.main import app
from knowledge_base.services.ingestion_service import IngestionPipeline


@pytest.fixture
def make_client(store, storage):
    """
    Build a TestClient wired to the in-memory store.

    Usage:
        client = make_client(embedder=FakeEmbeddingClient(), max_file_size=1024)
    """

    def _make(embedder=None, max_file_size=None):
        app.dependency_overrides[get_store] = lambda: store
        app.dependency_overrides[get_storage] = lambda: storage
        app.dependency_overrides[get_embedding_client] = lambda: embedder
        if max_file_size is not None:
            app.dependency_overrides[get_pipeline] = lambda: IngestionPipeline(
                store, embedder, storage, max_file_size=max_file_size
            )
        # Not used as a context manager: startup hooks would touch the real database
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture
def client(make_client, embedder):
    return make_client(embedder=embedder)

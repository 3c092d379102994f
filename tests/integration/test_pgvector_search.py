"""
Similarity search against a real Postgres + pgvector database.

Skipped unless DATABASE_URL points at Postgres, e.g.
    DATABASE_URL=postgresql://kb:kb@localhost:5432/kb pytest -m postgres
"""
import uuid

import pytest
from sqlalchemy.orm import sessionmaker

from knowledge_base.auth import OwnerScope
from knowledge_base.config import DATABASE_URL
from knowledge_base.db import init_db, make_engine
from knowledge_base.services.document_store import DocumentStore

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(
        not DATABASE_URL.startswith("postgresql"),
        reason="DATABASE_URL does not point at Postgres",
    ),
]


@pytest.fixture
def store():
    engine = make_engine(DATABASE_URL)
    init_db(engine)
    yield DocumentStore(sessionmaker(bind=engine, expire_on_commit=False))
    engine.dispose()


# Unique identities so rows left by other runs never match

@pytest.fixture
def alice() -> OwnerScope:
    return OwnerScope(user_id=f"alice-{uuid.uuid4()}", organization_id=f"acme-{uuid.uuid4()}")


@pytest.fixture
def bob(alice) -> OwnerScope:
    return OwnerScope(user_id=f"bob-{uuid.uuid4()}", organization_id=alice.organization_id)


@pytest.fixture
def carol() -> OwnerScope:
    return OwnerScope(user_id=f"carol-{uuid.uuid4()}", organization_id=f"globex-{uuid.uuid4()}")


@pytest.fixture(autouse=True)
def _cleanup(store, alice, carol):
    yield
    for scope in (alice, carol):
        for doc in store.list(scope):
            if doc.user_id == scope.user_id:
                store.delete(doc.id, scope)


def test_pgvector_search_ranks_by_cosine_similarity(store, alice, make_ready_document) -> None:
    make_ready_document(alice, [("exact", [1.0, 0.0]), ("close", [0.8, 0.6]), ("far", [0.0, 1.0])])

    matches = store.similarity_search([1.0, 0.0], alice, limit=10)

    assert [m.content for m in matches] == ["exact", "close", "far"]
    assert [m.similarity for m in matches] == pytest.approx([1.0, 0.8, 0.0])
    assert matches[0].document_name == "notes"


def test_pgvector_search_respects_limit(store, alice, make_ready_document) -> None:
    make_ready_document(alice, [("exact", [1.0, 0.0]), ("close", [0.8, 0.6]), ("far", [0.0, 1.0])])

    matches = store.similarity_search([1.0, 0.0], alice, limit=2)

    assert [m.content for m in matches] == ["exact", "close"]


def test_pgvector_search_is_scoped_to_caller(store, alice, bob, carol, make_ready_document) -> None:
    make_ready_document(alice, [("private", [1.0, 0.0])], name="Mine")
    make_ready_document(alice, [("shared", [1.0, 0.0])], name="Ours", shared=True)
    make_ready_document(carol, [("elsewhere", [1.0, 0.0])], name="Theirs")

    assert sorted(m.content for m in store.similarity_search([1.0, 0.0], alice, 10)) == ["private", "shared"]
    assert [m.content for m in store.similarity_search([1.0, 0.0], bob, 10)] == ["shared"]
    assert [m.content for m in store.similarity_search([1.0, 0.0], carol, 10)] == ["elsewhere"]


def test_pgvector_search_skips_unembedded_and_unready(store, alice, make_document, make_ready_document) -> None:
    make_ready_document(alice, [("embedded", [1.0, 0.0]), ("degraded", None)])
    make_document(alice, name="pending")

    matches = store.similarity_search([1.0, 0.0], alice, limit=10)

    assert [m.content for m in matches] == ["embedded"]

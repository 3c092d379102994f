"""
Document store.
Persistence and status transitions for documents and their chunks.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy import text as sa_text
from sqlalchemy.orm import Session

from ..auth import OwnerScope
from ..chunking import Chunk
from ..errors import AuthorizationError, NotFoundError, StaleRunError
from ..logging_config import logger
from ..models import Document, DocumentChunk, DocumentStatus, utcnow


@dataclass
class DocumentDraft:
    """Everything known about a document at upload time."""
    user_id: str
    name: str
    original_name: str
    mime_type: str
    size_bytes: int
    organization_id: Optional[str] = None
    storage_key: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChunkMatch:
    """A chunk returned by a similarity query."""
    chunk_id: str
    document_id: str
    document_name: str
    chunk_index: int
    content: str
    token_count: Optional[int]
    metadata: Optional[Dict[str, Any]]
    similarity: float


def can_read(doc: Document, scope: OwnerScope) -> bool:
    """Owner, or a member of the organization the document is shared with."""
    if doc.user_id == scope.user_id:
        return True
    return doc.organization_id is not None and doc.organization_id == scope.organization_id


def _visible(scope: OwnerScope):
    if scope.organization_id:
        return or_(
            and_(Document.user_id == scope.user_id, Document.organization_id.is_(None)),
            Document.organization_id == scope.organization_id,
        )
    return Document.user_id == scope.user_id


def _vector_literal(vector: Sequence[float]) -> str:
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


class DocumentStore:
    """
    CRUD over ``documents`` / ``document_chunks``.

    ``session_factory`` must produce sessions with ``expire_on_commit=False``;
    returned ORM objects are detached and read after their session closes.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    # ==================== Documents ====================

    def create(self, draft: DocumentDraft) -> Document:
        with self._session_factory() as db, db.begin():
            doc = Document(
                user_id=draft.user_id,
                organization_id=draft.organization_id,
                name=draft.name,
                original_name=draft.original_name,
                mime_type=draft.mime_type,
                size_bytes=draft.size_bytes,
                storage_key=draft.storage_key,
                status=DocumentStatus.PENDING.value,
                chunk_count=0,
                generation=0,
                doc_metadata=dict(draft.metadata),
            )
            db.add(doc)
            db.flush()
        logger.info("Document created", document_id=doc.id, user_id=doc.user_id,
                    shared=doc.organization_id is not None)
        return doc

    def load(self, document_id: str) -> Optional[Document]:
        """Fetch without an ownership check (pipeline use only)."""
        with self._session_factory() as db:
            return db.get(Document, document_id)

    def get(self, document_id: str, scope: OwnerScope) -> Document:
        """
        Fetch a document the caller may read.

        Raises:
            NotFoundError: If it does not exist or is not visible to the caller
        """
        with self._session_factory() as db:
            return self._readable(db, document_id, scope)

    def list(self, scope: OwnerScope) -> List[Document]:
        """Own private documents plus the organization's shared ones, newest first."""
        with self._session_factory() as db:
            rows = db.execute(
                select(Document)
                .where(_visible(scope))
                .order_by(Document.created_at.desc(), Document.id)
            ).scalars().all()
        return list(rows)

    def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        chunk_count: int = 0,
        error_message: Optional[str] = None,
        processed_at=None,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Set status, chunk count, error message and processed time in one update.

        ``chunk_count`` is forced to 0 for any status other than ready. When
        ``generation`` is given the update only applies to that generation.

        Returns:
            True if a row was updated
        """
        status = DocumentStatus(status)
        stmt = update(Document).where(Document.id == document_id)
        if generation is not None:
            stmt = stmt.where(Document.generation == generation)
        values = {
            "status": status.value,
            "chunk_count": chunk_count if status is DocumentStatus.READY else 0,
            "error_message": error_message,
            "updated_at": utcnow(),
        }
        if processed_at is not None:
            values["processed_at"] = processed_at
        with self._session_factory() as db, db.begin():
            result = db.execute(stmt.values(**values))
        return result.rowcount > 0

    def delete(self, document_id: str, scope: OwnerScope) -> Document:
        """
        Delete a document and all its chunks. Owner only.

        Returns:
            The deleted document (so callers can clean up its stored file)
        """
        with self._session_factory() as db, db.begin():
            doc = self._owned(db, document_id, scope)
            db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
            db.delete(doc)
        logger.info("Document deleted", document_id=document_id)
        return doc

    def reset_for_reprocess(self, document_id: str, scope: OwnerScope) -> Document:
        """
        Drop every chunk and put the document back to pending. Owner only.

        The generation is bumped so a run still in flight for the previous
        generation cannot write its results.
        """
        with self._session_factory() as db, db.begin():
            doc = self._owned(db, document_id, scope, lock=True)
            db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
            doc.status = DocumentStatus.PENDING.value
            doc.chunk_count = 0
            doc.error_message = None
            doc.processed_at = None
            doc.generation = (doc.generation or 0) + 1
            db.flush()
        logger.info("Document reset for reprocessing", document_id=document_id,
                    generation=doc.generation)
        return doc

    # ==================== Pipeline transitions ====================

    def begin_processing(self, document_id: str, generation: int) -> Document:
        """
        Move a pending document to processing.

        Raises:
            StaleRunError: If the document is gone, has a newer generation,
                or is not pending (a duplicate delivery of the same run)
        """
        with self._session_factory() as db, db.begin():
            doc = db.get(Document, document_id, with_for_update=True)
            if doc is None:
                raise StaleRunError(f"Document {document_id} no longer exists")
            if doc.generation != generation:
                raise StaleRunError(
                    f"Run generation {generation} superseded by {doc.generation}"
                )
            if doc.status != DocumentStatus.PENDING.value:
                raise StaleRunError(f"Document is {doc.status}, not pending")
            doc.status = DocumentStatus.PROCESSING.value
            db.flush()
        return doc

    def complete_run(
        self,
        document_id: str,
        generation: int,
        chunks: Sequence[Chunk],
        vectors: Optional[Sequence[Sequence[float]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Document:
        """
        Persist a run's chunks and mark the document ready, atomically.

        Chunks are inserted in index order with their vectors already set.
        Nothing is written if the run has been superseded.

        Raises:
            StaleRunError: If the document changed generation or left processing
        """
        with self._session_factory() as db, db.begin():
            doc = db.get(Document, document_id, with_for_update=True)
            if doc is None or doc.generation != generation:
                raise StaleRunError(f"Run generation {generation} for {document_id} is stale")
            if doc.status != DocumentStatus.PROCESSING.value:
                raise StaleRunError(f"Document is {doc.status}, not processing")

            db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
            self._add_chunks(db, document_id, chunks, vectors)

            doc.status = DocumentStatus.READY.value
            doc.chunk_count = len(chunks)
            doc.error_message = None
            doc.processed_at = utcnow()
            doc.doc_metadata = {**(doc.doc_metadata or {}), **(metadata or {})}
            db.flush()
        return doc

    def mark_failed(self, document_id: str, generation: int, message: str) -> bool:
        """
        Record a failed run. Leaves the document with zero chunks.

        Returns:
            False if the run was superseded or the document deleted
        """
        with self._session_factory() as db, db.begin():
            doc = db.get(Document, document_id, with_for_update=True)
            if doc is None or doc.generation != generation:
                return False
            db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
            doc.status = DocumentStatus.FAILED.value
            doc.chunk_count = 0
            doc.error_message = message
        return True

    # ==================== Chunks ====================

    def insert_chunks(
        self,
        document_id: str,
        chunks: Sequence[Chunk],
        vectors: Optional[Sequence[Sequence[float]]] = None,
    ) -> List[DocumentChunk]:
        """Insert a batch of chunks in index order."""
        with self._session_factory() as db, db.begin():
            rows = self._add_chunks(db, document_id, chunks, vectors)
        return rows

    def set_chunk_embedding(self, chunk_id: str, vector: Sequence[float]) -> bool:
        with self._session_factory() as db, db.begin():
            result = db.execute(
                update(DocumentChunk)
                .where(DocumentChunk.id == chunk_id)
                .values(embedding=list(vector))
            )
        return result.rowcount > 0

    def list_chunks(self, document_id: str) -> List[DocumentChunk]:
        with self._session_factory() as db:
            rows = db.execute(
                select(DocumentChunk)
                .where(DocumentChunk.document_id == document_id)
                .order_by(DocumentChunk.chunk_index)
            ).scalars().all()
        return list(rows)

    def list_unembedded_chunks(self, document_id: str) -> List[DocumentChunk]:
        with self._session_factory() as db:
            rows = db.execute(
                select(DocumentChunk)
                .where(DocumentChunk.document_id == document_id, DocumentChunk.embedding.is_(None))
                .order_by(DocumentChunk.chunk_index)
            ).scalars().all()
        return list(rows)

    def similarity_search(
        self,
        query_vector: Sequence[float],
        scope: OwnerScope,
        limit: int,
    ) -> List[ChunkMatch]:
        """
        Nearest chunks by cosine similarity among the caller's ready documents.

        Only chunks with an embedding are considered. Postgres computes the
        distance with pgvector; other databases (local SQLite) are scanned
        in process.
        """
        with self._session_factory() as db:
            if db.get_bind().dialect.name == "postgresql":
                return self._pgvector_search(db, query_vector, scope, limit)
            return self._scan_search(db, query_vector, scope, limit)

    # ==================== Internals ====================

    def _readable(self, db: Session, document_id: str, scope: OwnerScope, lock: bool = False) -> Document:
        doc = db.get(Document, document_id, with_for_update=lock)
        if doc is None or not can_read(doc, scope):
            raise NotFoundError("Document not found")
        return doc

    def _owned(self, db: Session, document_id: str, scope: OwnerScope, lock: bool = False) -> Document:
        doc = self._readable(db, document_id, scope, lock=lock)
        if doc.user_id != scope.user_id:
            raise AuthorizationError("Not authorized to modify this document")
        return doc

    @staticmethod
    def _add_chunks(db: Session, document_id: str, chunks, vectors) -> List[DocumentChunk]:
        if vectors is not None and len(vectors) != len(chunks):
            raise ValueError(f"Got {len(vectors)} vectors for {len(chunks)} chunks")
        rows = []
        for position, chunk in enumerate(chunks):
            row = DocumentChunk(
                document_id=document_id,
                chunk_index=chunk.index,
                content=chunk.content,
                token_count=chunk.token_count,
                embedding=list(vectors[position]) if vectors is not None else None,
                chunk_metadata=chunk.metadata,
            )
            db.add(row)
            rows.append(row)
        db.flush()
        return rows

    @staticmethod
    def _pgvector_search(db: Session, query_vector, scope: OwnerScope, limit: int) -> List[ChunkMatch]:
        params = {
            "qv": _vector_literal(query_vector),
            "uid": scope.user_id,
            "ready": DocumentStatus.READY.value,
            "k": limit,
        }
        if scope.organization_id:
            visible = "((d.user_id = :uid AND d.organization_id IS NULL) OR d.organization_id = :oid)"
            params["oid"] = scope.organization_id
        else:
            visible = "d.user_id = :uid"

        rows = db.execute(
            sa_text(f"""
                SELECT
                    c.id,
                    c.document_id,
                    d.name AS document_name,
                    c.chunk_index,
                    c.content,
                    c.token_count,
                    c.metadata,
                    1 - (c.embedding <=> (:qv)::vector) AS similarity
                FROM document_chunks c
                JOIN documents d ON d.id = c.document_id
                WHERE {visible}
                  AND d.status = :ready
                  AND c.embedding IS NOT NULL
                ORDER BY c.embedding <=> (:qv)::vector
                LIMIT :k
            """),
            params,
        ).mappings().all()

        return [
            ChunkMatch(
                chunk_id=r["id"],
                document_id=r["document_id"],
                document_name=r["document_name"],
                chunk_index=r["chunk_index"],
                content=r["content"],
                token_count=r["token_count"],
                metadata=r["metadata"],
                similarity=float(r["similarity"]),
            )
            for r in rows
        ]

    @staticmethod
    def _scan_search(db: Session, query_vector, scope: OwnerScope, limit: int) -> List[ChunkMatch]:
        rows = db.execute(
            select(DocumentChunk, Document.name)
            .join(Document, Document.id == DocumentChunk.document_id)
            .where(
                _visible(scope),
                Document.status == DocumentStatus.READY.value,
                DocumentChunk.embedding.is_not(None),
            )
        ).all()

        query = np.asarray(query_vector, dtype=float)
        query_norm = np.linalg.norm(query)
        matches = []
        for chunk, document_name in rows:
            vec = np.asarray(chunk.embedding, dtype=float)
            if vec.shape != query.shape:
                continue
            denom = query_norm * np.linalg.norm(vec)
            similarity = float(np.dot(query, vec) / denom) if denom else 0.0
            matches.append(ChunkMatch(
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                document_name=document_name,
                chunk_index=chunk.chunk_index,
                content=chunk.content,
                token_count=chunk.token_count,
                metadata=chunk.chunk_metadata,
                similarity=similarity,
            ))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]

"""
Ingestion pipeline.
Turns an uploaded file into a ready document with ordered, embedded chunks.

Runs are detached from the upload request (FastAPI background tasks) and
every write a run makes is conditional on the document generation it
started with, so a reprocess request issued mid-run wins.
"""
from dataclasses import dataclass
from time import perf_counter
from typing import List, Optional, Sequence

from ..auth import OwnerScope
from ..chunking import chunk_document, chunk_stats
from ..config import FORMAT_NAMES, MAX_FILE_SIZE_BYTES
from ..embedding import EmbeddingClient
from ..errors import PipelineFailure, StaleRunError, ValidationError
from ..logging_config import logger
from ..models import Document, DocumentStatus
from ..storage import LocalFileStorage
from ..text_extraction import display_name, read_text, resolve_mime_type
from ..utils.helpers import sanitize_error_message
from .document_store import DocumentDraft, DocumentStore


@dataclass
class IngestionResult:
    """Outcome of one pipeline run."""
    document_id: str
    status: str
    chunk_count: int = 0
    embedded: bool = False
    error: Optional[str] = None


class IngestionPipeline:
    def __init__(
        self,
        store: DocumentStore,
        embedder: Optional[EmbeddingClient],
        storage: LocalFileStorage,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ):
        self.store = store
        self.embedder = embedder
        self.storage = storage
        self.max_file_size = max_file_size

    # ==================== Upload ====================

    def submit(
        self,
        scope: OwnerScope,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        shared: bool = False,
    ) -> Document:
        """
        Validate an upload, keep its bytes and create the pending document.

        Nothing is stored when validation fails. ``shared`` only takes effect
        when the caller belongs to an organization.

        Raises:
            ValidationError: Missing file, size over the ceiling, or unsupported type
        """
        filename = (filename or "").strip()
        if not filename:
            raise ValidationError("No file provided")

        self.check_size(filename, len(data))

        try:
            mime_type = resolve_mime_type(content_type, filename)
        except ValidationError:
            logger.warning("Upload rejected: unsupported type", filename=filename,
                           content_type=content_type)
            raise

        storage_key = self.storage.new_key(scope.user_id, filename)
        self.storage.save(storage_key, data)

        draft = DocumentDraft(
            user_id=scope.user_id,
            organization_id=scope.organization_id if shared else None,
            name=display_name(filename),
            original_name=filename,
            mime_type=mime_type,
            size_bytes=len(data),
            storage_key=storage_key,
            metadata={"format": FORMAT_NAMES.get(mime_type, "Unknown")},
        )
        try:
            doc = self.store.create(draft)
        except Exception:
            self.storage.delete(storage_key)
            raise

        logger.info("Upload accepted", document_id=doc.id, filename=filename,
                    mime_type=mime_type, size_bytes=len(data))
        return doc

    def check_size(self, filename: str, size_bytes: int) -> None:
        """Reject an upload over the ceiling; callers may check before reading the body."""
        if size_bytes > self.max_file_size:
            logger.warning("Upload rejected: too large", filename=filename,
                           size_bytes=size_bytes, max_bytes=self.max_file_size)
            raise ValidationError(
                f"File too large. Maximum size is {self.max_file_size // (1024 * 1024)}MB",
                extra={"max_size_bytes": self.max_file_size},
            )

    def reprocess(self, scope: OwnerScope, document_id: str) -> Document:
        """Reset an owned document to pending; the caller schedules ``run``."""
        return self.store.reset_for_reprocess(document_id, scope)

    # ==================== Processing ====================

    def run(self, document_id: str, generation: int) -> IngestionResult:
        """
        Process one document generation end to end.

        Failures are recorded on the document rather than raised. A run that
        has been superseded returns without writing.
        """
        t = perf_counter()
        try:
            doc = self.store.begin_processing(document_id, generation)
        except StaleRunError as e:
            logger.info("Skipping stale ingestion run", document_id=document_id,
                        generation=generation, reason=e.message)
            return IngestionResult(document_id=document_id, status="skipped", error=e.message)
        except Exception as e:
            return self._fail(document_id, generation, e)

        logger.info("Ingestion started", document_id=document_id, generation=generation)

        try:
            text = self._load_text(doc)
            chunks = chunk_document(text, doc.mime_type)
            if not chunks:
                raise PipelineFailure("Document produced no chunks")
            logger.info("Document chunked", document_id=document_id, chunk_count=len(chunks))

            vectors = self._embed([c.content for c in chunks], document_id)

            metadata = {
                "format": FORMAT_NAMES.get(doc.mime_type, "Unknown"),
                "textLength": len(text),
                "chunkStats": chunk_stats(chunks),
                "embedded": vectors is not None,
            }
            self.store.complete_run(document_id, generation, chunks, vectors, metadata)
        except StaleRunError as e:
            logger.info("Ingestion run superseded", document_id=document_id,
                        generation=generation, reason=e.message)
            return IngestionResult(document_id=document_id, status="skipped", error=e.message)
        except Exception as e:
            return self._fail(document_id, generation, e)

        logger.info("Document ready", document_id=document_id, chunk_count=len(chunks),
                    embedded=vectors is not None,
                    duration_ms=round((perf_counter() - t) * 1000, 2))
        return IngestionResult(
            document_id=document_id,
            status=DocumentStatus.READY.value,
            chunk_count=len(chunks),
            embedded=vectors is not None,
        )

    def backfill_embeddings(self, document_id: str) -> int:
        """
        Embed the chunks of a degraded document that have no vector yet.

        Returns:
            Number of chunks updated (0 when no provider is configured)

        Raises:
            EmbeddingError: If the provider call fails
        """
        if self.embedder is None:
            logger.warning("No embedding provider configured; backfill skipped",
                           document_id=document_id)
            return 0

        pending = self.store.list_unembedded_chunks(document_id)
        if not pending:
            return 0

        vectors = self.embedder.embed([c.content for c in pending])
        updated = 0
        for chunk, vector in zip(pending, vectors):
            if self.store.set_chunk_embedding(chunk.id, vector):
                updated += 1

        logger.info("Embeddings backfilled", document_id=document_id, chunks=updated)
        return updated

    # ==================== Internals ====================

    def _load_text(self, doc: Document) -> str:
        if not doc.storage_key:
            raise PipelineFailure("Original file is not available")
        try:
            data = self.storage.load(doc.storage_key)
        except FileNotFoundError as e:
            raise PipelineFailure("Original file is not available") from e

        text = read_text(data, doc.mime_type)
        if not text.strip():
            raise PipelineFailure("No text content extracted from document")
        return text

    def _embed(self, texts: Sequence[str], document_id: str) -> Optional[List[List[float]]]:
        """Vectors for every chunk, or None when embedding is unavailable."""
        if self.embedder is None:
            logger.warning("No embedding provider configured; storing chunks without vectors",
                           document_id=document_id)
            return None

        t = perf_counter()
        try:
            vectors = self.embedder.embed(texts)
        except Exception as e:
            logger.error("Embedding failed; storing chunks without vectors",
                         document_id=document_id, error=str(e))
            return None

        logger.info("Embeddings generated", document_id=document_id, count=len(vectors),
                    provider=self.embedder.provider,
                    duration_ms=round((perf_counter() - t) * 1000, 2))
        return vectors

    def _fail(self, document_id: str, generation: int, error: Exception) -> IngestionResult:
        message = sanitize_error_message(str(error))
        logger.error("Ingestion failed", document_id=document_id, generation=generation,
                     error=message, exc_info=not isinstance(error, PipelineFailure))
        if not self.store.mark_failed(document_id, generation, message):
            logger.info("Failure not recorded; run superseded", document_id=document_id)
            return IngestionResult(document_id=document_id, status="skipped", error=message)
        return IngestionResult(document_id=document_id, status=DocumentStatus.FAILED.value,
                               error=message)

"""
Document management API routes.
Handles document upload, listing, inspection, reprocessing and deletion.
"""
import os

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile, status

from ..auth import OwnerScope, get_owner_scope
from ..config import SUPPORTED_MIME_TYPES
from ..dependencies import get_pipeline, get_storage, get_store
from ..logging_config import logger
from ..schemas import ChunkOut, DocumentDetailOut, DocumentListOut, DocumentOut
from ..services.document_store import DocumentStore
from ..services.ingestion_service import IngestionPipeline
from ..storage import LocalFileStorage

router = APIRouter(prefix="/api", tags=["documents"])


# ==================== Document Upload ====================

@router.post("/documents", response_model=DocumentOut, status_code=status.HTTP_202_ACCEPTED)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    shared: bool = Form(False),
    scope: OwnerScope = Depends(get_owner_scope),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """
    Upload one document for ingestion.

    Supported formats: TXT, MD

    Process:
    1. Validate size and type (nothing is stored on rejection)
    2. Keep the raw bytes and create a pending document
    3. Chunk, embed and index it in the background

    Returns:
        The pending document; poll GET /api/documents/{id} for its status
    """
    # Check file size before reading
    file.file.seek(0, os.SEEK_END)
    size_bytes = file.file.tell()
    file.file.seek(0)
    logger.info("Processing upload", filename=file.filename, content_type=file.content_type,
                size_bytes=size_bytes, user_id=scope.user_id)
    pipeline.check_size(file.filename, size_bytes)

    data = await file.read()

    doc = pipeline.submit(scope, file.filename, file.content_type, data, shared=shared)
    background_tasks.add_task(pipeline.run, doc.id, doc.generation)
    return doc


# ==================== Document Listing ====================

@router.get("/documents", response_model=DocumentListOut)
async def list_documents(
    scope: OwnerScope = Depends(get_owner_scope),
    store: DocumentStore = Depends(get_store),
):
    """
    Returns the caller's private documents and their organization's shared ones.

    Returns:
        Documents newest first, plus the accepted MIME types
    """
    documents = store.list(scope)
    logger.info("Listed documents", count=len(documents), user_id=scope.user_id)
    return DocumentListOut(
        documents=[DocumentOut.model_validate(d) for d in documents],
        supported_types=list(SUPPORTED_MIME_TYPES),
    )


@router.get("/documents/{doc_id}", response_model=DocumentDetailOut)
async def get_document(
    doc_id: str,
    scope: OwnerScope = Depends(get_owner_scope),
    store: DocumentStore = Depends(get_store),
):
    """Document status and metadata with its chunks in index order."""
    doc = store.get(doc_id, scope)
    chunks = [
        ChunkOut(
            id=c.id,
            chunk_index=c.chunk_index,
            content=c.content,
            token_count=c.token_count,
            metadata=c.chunk_metadata,
            has_embedding=c.embedding is not None,
        )
        for c in store.list_chunks(doc_id)
    ]
    # Chunks come from the store; the ORM relationship is detached here
    return DocumentDetailOut(**DocumentOut.model_validate(doc).model_dump(), chunks=chunks)


# ==================== Reprocessing ====================

@router.post(
    "/documents/{doc_id}/reprocess",
    response_model=DocumentOut,
    status_code=status.HTTP_202_ACCEPTED,
)
async def reprocess_document(
    doc_id: str,
    background_tasks: BackgroundTasks,
    scope: OwnerScope = Depends(get_owner_scope),
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """
    Drop all chunks and run ingestion again. Owner only.

    Returns:
        The document, now pending with zero chunks
    """
    doc = pipeline.reprocess(scope, doc_id)
    background_tasks.add_task(pipeline.run, doc.id, doc.generation)
    logger.info("Reprocess scheduled", doc_id=doc_id, generation=doc.generation)
    return doc


# ==================== Document Deletion ====================

@router.delete("/documents/{doc_id}")
async def delete_document(
    doc_id: str,
    scope: OwnerScope = Depends(get_owner_scope),
    store: DocumentStore = Depends(get_store),
    storage: LocalFileStorage = Depends(get_storage),
):
    """
    Deletes a document, all its chunks and its stored file. Owner only.

    Returns:
        Success confirmation with deleted document ID
    """
    doc = store.delete(doc_id, scope)
    if doc.storage_key:
        storage.delete(doc.storage_key)
    return {"ok": True, "deleted": doc_id}

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, String, Text, Integer, ForeignKey, BigInteger, TIMESTAMP, JSON, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from pgvector.sqlalchemy import Vector

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class Document(Base):
    __tablename__ = "documents"
    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(255), nullable=False)
    # Set only for documents shared with an organization
    organization_id = Column(String(255), nullable=True)
    name = Column(String(255), nullable=False)
    original_name = Column(String(255))
    mime_type = Column(String(100), nullable=False)
    size_bytes = Column(BigInteger, nullable=False, default=0)
    storage_key = Column(String(500))
    status = Column(String(50), nullable=False, default=DocumentStatus.PENDING.value)
    chunk_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text)
    doc_metadata = Column("metadata", JSON, nullable=False, default=dict)
    # Bumped by every reprocess; writes from an older run are rejected
    generation = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    processed_at = Column(TIMESTAMP(timezone=True))

    chunks = relationship(
        "DocumentChunk",
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DocumentChunk.chunk_index",
    )

    __table_args__ = (
        Index("documents_user_id_idx", "user_id"),
        Index("documents_org_id_idx", "organization_id"),
        Index("documents_status_idx", "status"),
    )


class DocumentChunk(Base):
    __tablename__ = "document_chunks"
    id = Column(String(36), primary_key=True, default=_new_id)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    token_count = Column(Integer)
    # Dimension depends on the provider, so the column is left unsized
    embedding = Column(Vector(), nullable=True)
    chunk_metadata = Column("metadata", JSON)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    document = relationship("Document", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="document_chunks_document_index_key"),
        Index("document_chunks_document_id_idx", "document_id"),
    )

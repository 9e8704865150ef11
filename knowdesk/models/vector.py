"""Vector records, one per document chunk, stored with pgvector.

Only the vector store adapter reads or writes this table.
"""

import uuid
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from knowdesk.models.base import Base, TimestampMixin

# BGE-small-en-v1.5 embedding dimension
EMBEDDING_DIMENSIONS = 384


class ChunkVector(Base, TimestampMixin):
    __tablename__ = "chunk_vectors"

    # The namespace is the tenant; the key is deterministic so a re-run
    # overwrites the same rows instead of adding new ones.
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    document_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, index=True)
    chunk_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    knowledge_base_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, nullable=True, index=True
    )
    embedding_model: Mapped[str] = mapped_column(String(255), nullable=False)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(EMBEDDING_DIMENSIONS), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    document_title: Mapped[str] = mapped_column(String(255), nullable=False)
    page_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ChunkVector(tenant_id={self.tenant_id}, document_id={self.document_id}, "
            f"chunk_index={self.chunk_index})>"
        )

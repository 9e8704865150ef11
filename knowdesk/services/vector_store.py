"""
Vector store adapter.

The namespace is the tenant id; a query never crosses namespaces. Records are
keyed by "{document_id}:{chunk_index}" so re-ingesting a document overwrites
its vectors.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from knowdesk.errors import VectorStoreError
from knowdesk.models.base import utcnow
from knowdesk.models.vector import ChunkVector
from knowdesk.utils.logging_config import logger


def vector_id(document_id: Any, chunk_index: int) -> str:
    return f"{document_id}:{chunk_index}"


def parse_vector_id(value: str) -> tuple[str, int]:
    document_id, _, chunk_index = value.rpartition(":")
    return document_id, int(chunk_index)


@dataclass(frozen=True)
class VectorRecord:
    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorMatch:
    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorStore(Protocol):
    def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> None: ...

    def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        knowledge_base_ids: Sequence[str],
        embedding_model: str,
    ) -> list[VectorMatch]: ...

    def delete_by_document(self, namespace: str, document_id: str) -> None: ...

    def delete_stale(self, namespace: str, document_id: str, keep_below: int) -> None: ...


def _uuid(value: Any) -> Optional[uuid.UUID]:
    if value in (None, ""):
        return None
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class PgVectorStore:
    """pgvector-backed store; cosine similarity is 1 - cosine distance."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def upsert(self, namespace: str, records: Sequence[VectorRecord]) -> None:
        if not records:
            return
        now = utcnow()
        rows = []
        for record in records:
            document_id, chunk_index = parse_vector_id(record.id)
            md = record.metadata
            rows.append(
                {
                    "tenant_id": _uuid(namespace),
                    "document_id": _uuid(document_id),
                    "chunk_index": chunk_index,
                    "knowledge_base_id": _uuid(md.get("knowledge_base_id")),
                    "embedding_model": md["embedding_model"],
                    "embedding": record.values,
                    "content": md.get("content", ""),
                    "document_title": md.get("document_title", ""),
                    "page_number": md.get("page_number"),
                    "created_at": now,
                    "updated_at": now,
                }
            )
        stmt = insert(ChunkVector).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "document_id", "chunk_index"],
            set_={
                "knowledge_base_id": stmt.excluded.knowledge_base_id,
                "embedding_model": stmt.excluded.embedding_model,
                "embedding": stmt.excluded.embedding,
                "content": stmt.excluded.content,
                "document_title": stmt.excluded.document_title,
                "page_number": stmt.excluded.page_number,
                "updated_at": now,
            },
        )
        try:
            with self.session_factory.begin() as session:
                session.execute(stmt)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Vector upsert failed: {e}") from e
        logger.info(f"Upserted {len(rows)} vectors into namespace {namespace}")

    def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        knowledge_base_ids: Sequence[str],
        embedding_model: str,
    ) -> list[VectorMatch]:
        if not knowledge_base_ids:
            return []
        # Ties on distance fall back to the record key so results are stable.
        distance = ChunkVector.embedding.cosine_distance(vector).label("distance")
        stmt = (
            select(ChunkVector, distance)
            .where(
                ChunkVector.tenant_id == _uuid(namespace),
                ChunkVector.embedding_model == embedding_model,
                ChunkVector.knowledge_base_id.in_([_uuid(k) for k in knowledge_base_ids]),
            )
            .order_by(distance, ChunkVector.document_id, ChunkVector.chunk_index)
            .limit(top_k)
        )
        try:
            with self.session_factory() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Vector query failed: {e}") from e

        return [
            VectorMatch(
                id=vector_id(row.document_id, row.chunk_index),
                score=1.0 - float(dist),
                metadata={
                    "document_id": str(row.document_id),
                    "chunk_index": row.chunk_index,
                    "knowledge_base_id": str(row.knowledge_base_id),
                    "content": row.content,
                    "document_title": row.document_title,
                    "page_number": row.page_number,
                },
            )
            for row, dist in rows
        ]

    def delete_by_document(self, namespace: str, document_id: str) -> None:
        self._delete(namespace, document_id, keep_below=0)

    def delete_stale(self, namespace: str, document_id: str, keep_below: int) -> None:
        """Deletes the document's vectors with chunk_index >= keep_below."""
        self._delete(namespace, document_id, keep_below)

    def _delete(self, namespace: str, document_id: str, keep_below: int) -> None:
        stmt = delete(ChunkVector).where(
            ChunkVector.tenant_id == _uuid(namespace),
            ChunkVector.document_id == _uuid(document_id),
            ChunkVector.chunk_index >= keep_below,
        )
        try:
            with self.session_factory.begin() as session:
                result = session.execute(stmt)
        except SQLAlchemyError as e:
            raise VectorStoreError(f"Vector delete failed: {e}") from e
        if result.rowcount:
            logger.info(
                f"Deleted {result.rowcount} vectors of document {document_id} "
                f"from namespace {namespace}"
            )

"""
Document ingestion: extract, chunk, embed and index one document.

process_document never raises. Every failure ends in FAILED with a readable
error message, or leaves the document in PROCESSING for the recovery sweep
when even that write is impossible.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from langchain_core.embeddings import Embeddings
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from knowdesk.errors import ExtractionError, IllegalTransition, KnowdeskError
from knowdesk.models.chunk import DocumentChunk
from knowdesk.models.document import Document, DocumentStatus
from knowdesk.services.chunking import Passage, TextChunker
from knowdesk.services.embeddings import embed_documents
from knowdesk.services.extraction import ContentExtractor
from knowdesk.services.lifecycle import DocumentStateMachine
from knowdesk.services.storage import ObjectStorage
from knowdesk.services.vector_store import VectorRecord, VectorStore, vector_id
from knowdesk.services.vision import PageContent, PageResult
from knowdesk.utils.logging_config import logger


@dataclass(frozen=True)
class ProcessResult:
    success: bool
    chunk_count: int = 0
    error: Optional[str] = None


class SupersededAttempt(Exception):
    """The document left PROCESSING for this attempt before the final write."""

    def __init__(self, message: str, vectors_written: bool = False):
        super().__init__(message)
        self.vectors_written = vectors_written


@dataclass(frozen=True)
class _DocumentSnapshot:
    id: uuid.UUID
    tenant_id: uuid.UUID
    knowledge_base_id: Optional[uuid.UUID]
    title: str
    file_type: str
    storage_path: Optional[str]
    raw_text: Optional[str]


def _page_flags(pages: list[PageResult]) -> dict[int, dict]:
    return {
        p.page_number: {
            "has_images": p.has_images,
            "has_charts": p.has_charts,
            "has_tables": p.has_tables,
        }
        for p in pages
        if isinstance(p, PageContent)
    }


class DocumentProcessor:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        extractor: ContentExtractor,
        chunker: TextChunker,
        embeddings: Embeddings,
        vector_store: VectorStore,
        storage: ObjectStorage,
        *,
        embedding_model_name: str,
        batch_size: int = 100,
        state_machine: Optional[DocumentStateMachine] = None,
    ):
        self.session_factory = session_factory
        self.extractor = extractor
        self.chunker = chunker
        self.embeddings = embeddings
        self.vector_store = vector_store
        self.storage = storage
        self.embedding_model_name = embedding_model_name
        self.batch_size = batch_size
        self.lifecycle = state_machine or DocumentStateMachine(session_factory)

    def process_document(self, document_id: uuid.UUID) -> ProcessResult:
        """
        Runs one ingestion attempt for a PENDING document.

        Args:
            document_id: The ID of the document to process.

        Returns:
            ProcessResult with the number of chunks indexed, or the error.
        """
        logger.info(f"Starting ingestion for document_id: {document_id}")
        try:
            attempt = self.lifecycle.begin_processing(document_id)
        except IllegalTransition as e:
            logger.warning(f"Document {document_id} cannot be processed: {e}")
            return ProcessResult(False, error=str(e))
        if attempt is None:
            logger.info(f"Document {document_id} is missing or already being processed")
            return ProcessResult(False, error="Document is not pending")

        try:
            chunk_count = self._run(document_id, attempt)
        except SupersededAttempt as e:
            logger.warning(str(e))
            return ProcessResult(False, error=str(e))
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(
                f"Ingestion failed for document_id: {document_id}. Error: {message}",
                exc_info=not isinstance(e, KnowdeskError),
            )
            self._mark_failed(document_id, attempt, message)
            return ProcessResult(False, error=message)

        logger.info(f"Successfully indexed document_id: {document_id} ({chunk_count} chunks)")
        return ProcessResult(True, chunk_count=chunk_count)

    def _mark_failed(self, document_id: uuid.UUID, attempt: int, message: str) -> None:
        try:
            self.lifecycle.fail(document_id, attempt, message)
        except SQLAlchemyError as e:
            logger.error(
                f"Could not mark document {document_id} as failed, "
                f"leaving it for the recovery sweep: {e}"
            )

    def abort(self, document_id: uuid.UUID, message: str) -> bool:
        """
        Fails a PENDING document whose file never became available.

        Returns:
            False when the document is gone, taken by a worker, or already
            finished.
        """
        try:
            attempt = self.lifecycle.begin_processing(document_id)
        except IllegalTransition as e:
            logger.warning(f"Not aborting document {document_id}: {e}")
            return False
        if attempt is None:
            return False
        return self.lifecycle.fail(document_id, attempt, message)

    def _load(self, document_id: uuid.UUID) -> _DocumentSnapshot:
        with self.session_factory() as session:
            doc = session.get(Document, document_id)
            if doc is None:
                raise ExtractionError(f"Document {document_id} not found")
            return _DocumentSnapshot(
                id=doc.id,
                tenant_id=doc.tenant_id,
                knowledge_base_id=doc.knowledge_base_id,
                title=doc.title,
                file_type=doc.file_type.value,
                storage_path=doc.storage_path,
                raw_text=doc.raw_text,
            )

    def _run(self, document_id: uuid.UUID, attempt: int) -> int:
        doc = self._load(document_id)

        pages: list[PageResult] = []
        if doc.raw_text:
            logger.info(f"Using cached text for document {document_id} ({len(doc.raw_text)} chars)")
            text = doc.raw_text
        elif doc.storage_path:
            buffer = self.storage.get(doc.storage_path)
            extracted = self.extractor.extract(buffer, doc.file_type, doc.title)
            text, pages = extracted.text, extracted.pages
        else:
            raise ExtractionError("No content available for processing")

        passages = self.chunker.chunk(text)
        logger.info(f"Created {len(passages)} chunks for document {document_id}")

        try:
            self._index(doc, attempt, passages)
            self._replace_chunks(doc, attempt, passages, text, _page_flags(pages))
        except SupersededAttempt as e:
            if e.vectors_written:
                self._resync_vectors(doc)
            raise
        return len(passages)

    def _ensure_current(self, document_id: uuid.UUID, attempt: int, vectors_written: bool) -> None:
        if not self.lifecycle.is_current(document_id, attempt):
            raise SupersededAttempt(
                f"Attempt {attempt} of document {document_id} was superseded; discarding results",
                vectors_written=vectors_written,
            )

    def _vector_records(
        self, doc: _DocumentSnapshot, passages: list[Passage]
    ) -> list[VectorRecord]:
        vectors = embed_documents(
            self.embeddings, [p.content for p in passages], self.batch_size
        )
        return [
            VectorRecord(
                id=vector_id(doc.id, p.index),
                values=values,
                metadata={
                    "document_id": str(doc.id),
                    "chunk_index": p.index,
                    "knowledge_base_id": str(doc.knowledge_base_id or ""),
                    "embedding_model": self.embedding_model_name,
                    "content": p.content,
                    "document_title": doc.title,
                    "page_number": p.page_number,
                },
            )
            for p, values in zip(passages, vectors)
        ]

    def _index(self, doc: _DocumentSnapshot, attempt: int, passages: list[Passage]) -> None:
        namespace = str(doc.tenant_id)
        records = self._vector_records(doc, passages)
        # Embedding is slow; the recovery sweep may have handed the document
        # to another worker in the meantime.
        self._ensure_current(doc.id, attempt, vectors_written=False)
        self.vector_store.upsert(namespace, records)
        self._ensure_current(doc.id, attempt, vectors_written=True)
        self.vector_store.delete_stale(namespace, str(doc.id), keep_below=len(records))

    def _resync_vectors(self, doc: _DocumentSnapshot) -> None:
        """
        Rebuilds a document's vectors from its stored chunks after a superseded
        attempt wrote over them. A document that is PENDING or PROCESSING is
        left alone; its running attempt rewrites the vectors.
        """
        namespace = str(doc.tenant_id)
        with self.session_factory() as session:
            status = session.scalar(select(Document.status).where(Document.id == doc.id))
            if status in (DocumentStatus.PENDING, DocumentStatus.PROCESSING):
                return
            chunks = session.scalars(
                select(DocumentChunk)
                .where(DocumentChunk.document_id == doc.id)
                .order_by(DocumentChunk.chunk_index)
            ).all()
            passages = [
                Passage(c.chunk_index, c.content, c.start_char, c.page_number) for c in chunks
            ]

        if status is None or not passages:
            self.vector_store.delete_by_document(namespace, str(doc.id))
        else:
            self.vector_store.upsert(namespace, self._vector_records(doc, passages))
            self.vector_store.delete_stale(namespace, str(doc.id), keep_below=len(passages))
        logger.info(f"Restored {len(passages)} vectors of document {doc.id} from stored chunks")

    def _replace_chunks(
        self,
        doc: _DocumentSnapshot,
        attempt: int,
        passages: list[Passage],
        text: str,
        flags: dict[int, dict],
    ) -> None:
        with self.session_factory.begin() as session:
            if not self.lifecycle.complete(
                session, doc.id, attempt, chunk_count=len(passages), raw_text=text
            ):
                raise SupersededAttempt(
                    f"Attempt {attempt} of document {doc.id} was superseded; discarding results",
                    vectors_written=True,
                )
            session.execute(
                delete(DocumentChunk).where(DocumentChunk.document_id == doc.id)
            )
            session.add_all(
                [
                    DocumentChunk(
                        tenant_id=doc.tenant_id,
                        document_id=doc.id,
                        chunk_index=p.index,
                        page_number=p.page_number,
                        start_char=p.start_char,
                        content=p.content,
                        additional_data=flags.get(p.page_number),
                    )
                    for p in passages
                ]
            )

    def delete_document(self, document_id: uuid.UUID) -> bool:
        """Deletes a document with its chunks, vectors and stored file."""
        with self.session_factory() as session:
            doc = session.get(Document, document_id)
            if doc is None:
                return False
            namespace, storage_path = str(doc.tenant_id), doc.storage_path

        self.vector_store.delete_by_document(namespace, str(document_id))
        if storage_path:
            self.storage.delete(storage_path)
        with self.session_factory.begin() as session:
            doc = session.get(Document, document_id)
            if doc is not None:
                session.delete(doc)
        logger.info(f"Deleted document {document_id}")
        return True

    def reprocess_tenant_documents(self, tenant_id: uuid.UUID) -> dict[uuid.UUID, ProcessResult]:
        """Resets every finished document of a tenant and processes it again."""
        with self.session_factory() as session:
            document_ids = session.scalars(
                select(Document.id)
                .where(
                    Document.tenant_id == tenant_id,
                    Document.status != DocumentStatus.PROCESSING,
                )
                .order_by(Document.created_at)
            ).all()

        results: dict[uuid.UUID, ProcessResult] = {}
        for document_id in document_ids:
            try:
                self.lifecycle.request_reprocess(document_id)
            except IllegalTransition as e:
                results[document_id] = ProcessResult(False, error=str(e))
                continue
            results[document_id] = self.process_document(document_id)
        succeeded = sum(1 for r in results.values() if r.success)
        logger.info(
            f"Reprocessed {succeeded}/{len(results)} documents for tenant {tenant_id}"
        )
        return results

from sqlalchemy import select

from fakes import InMemoryVectorStore, KeywordEmbeddings
from knowdesk.models.chunk import DocumentChunk
from knowdesk.models.document import DocumentStatus, FileType
from knowdesk.services.chunking import TextChunker
from knowdesk.services.extraction import ContentExtractor
from knowdesk.services.ingestion import DocumentProcessor

LONG_TEXT = "\n\n".join(
    f"Section {n}. Refunds are processed within {n + 3} business days of approval."
    for n in range(12)
)


def upload(seed, storage, tenant, kb, data: bytes, file_type=FileType.TXT, **kw):
    path = f"{tenant.id}/{kw.get('title', 'doc')}.{file_type.value}"
    storage.objects[path] = data
    return seed.document(tenant, kb, file_type=file_type, storage_path=path, **kw)


def chunks_of(session_factory, document_id):
    with session_factory() as session:
        return session.scalars(
            select(DocumentChunk)
            .where(DocumentChunk.document_id == document_id)
            .order_by(DocumentChunk.chunk_index)
        ).all()


def test_text_document_is_indexed(processor, seed, storage, vector_store, session_factory):
    tenant = seed.tenant()
    kb = seed.knowledge_base(tenant)
    doc = upload(seed, storage, tenant, kb, LONG_TEXT.encode())

    result = processor.process_document(doc.id)

    assert result.success
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.COMPLETED
    assert stored.chunk_count == result.chunk_count > 1
    assert stored.raw_text == LONG_TEXT
    assert stored.error_message is None

    chunks = chunks_of(session_factory, doc.id)
    assert [c.chunk_index for c in chunks] == list(range(result.chunk_count))
    assert vector_store.ids(str(tenant.id)) == {
        f"{doc.id}:{i}" for i in range(result.chunk_count)
    }
    record = vector_store.namespaces[str(tenant.id)][f"{doc.id}:0"]
    assert record.metadata["knowledge_base_id"] == str(kb.id)
    assert record.metadata["document_title"] == "Handbook"


def test_cached_text_skips_storage(processor, seed, storage):
    tenant = seed.tenant()
    doc = seed.document(tenant, raw_text="Shipping takes two days.", storage_path="missing")

    assert processor.process_document(doc.id).success
    assert storage.objects == {}


def test_document_without_content_fails(processor, seed):
    tenant = seed.tenant()
    doc = seed.document(tenant)

    result = processor.process_document(doc.id)

    assert not result.success
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.FAILED
    assert stored.error_message == "No content available for processing"


def test_unreadable_file_fails_with_message(processor, seed, storage):
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, b"\xff\xfe\xfa")

    result = processor.process_document(doc.id)

    assert not result.success
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.FAILED
    assert "UTF-8" in stored.error_message


def test_missing_stored_file_fails(processor, seed):
    tenant = seed.tenant()
    doc = seed.document(tenant, storage_path=f"{tenant.id}/gone.txt")

    assert not processor.process_document(doc.id).success
    assert seed.get_document(doc.id).status == DocumentStatus.FAILED


def test_embedding_failure_marks_document_failed(
    session_factory, seed, storage, vector_store
):
    class BrokenEmbeddings(KeywordEmbeddings):
        def embed_documents(self, texts):
            raise RuntimeError("model not loaded")

    processor = DocumentProcessor(
        session_factory,
        extractor=ContentExtractor(),
        chunker=TextChunker(),
        embeddings=BrokenEmbeddings(),
        vector_store=vector_store,
        storage=storage,
        embedding_model_name="keyword-test",
    )
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, b"Some text")

    result = processor.process_document(doc.id)

    assert not result.success
    assert "model not loaded" in seed.get_document(doc.id).error_message
    assert vector_store.ids(str(tenant.id)) == set()


def test_completed_document_is_not_processed_again(processor, seed, embeddings):
    tenant = seed.tenant()
    doc = seed.document(tenant, status=DocumentStatus.COMPLETED, raw_text="done")

    result = processor.process_document(doc.id)

    assert not result.success
    assert embeddings.document_calls == 0
    assert seed.get_document(doc.id).status == DocumentStatus.COMPLETED


def test_reprocessing_shorter_text_removes_stale_vectors(
    processor, seed, storage, vector_store, session_factory
):
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, LONG_TEXT.encode())
    first = processor.process_document(doc.id)

    assert processor.lifecycle.replace_content(doc.id, "Refunds take three days.")
    second = processor.process_document(doc.id)

    assert first.chunk_count > second.chunk_count == 1
    assert vector_store.ids(str(tenant.id)) == {f"{doc.id}:0"}
    chunks = chunks_of(session_factory, doc.id)
    assert [c.content for c in chunks] == ["Refunds take three days."]


def test_pdf_page_flags_are_stored_on_chunks(
    session_factory, seed, storage, vector_store, embeddings, llm
):
    import fitz

    from knowdesk.services.vision import VisionPageDescriber

    pdf = fitz.open()
    pdf.new_page().insert_text((72, 72), "Plans")
    data = pdf.tobytes()
    pdf.close()
    llm.page_descriptions = ["Plan | Price\nBasic | 10"]

    processor = DocumentProcessor(
        session_factory,
        extractor=ContentExtractor(VisionPageDescriber(llm, dpi=36)),
        chunker=TextChunker(),
        embeddings=embeddings,
        vector_store=vector_store,
        storage=storage,
        embedding_model_name="keyword-test",
    )
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, data, file_type=FileType.PDF)

    assert processor.process_document(doc.id).success
    chunk = chunks_of(session_factory, doc.id)[0]
    assert chunk.page_number == 1
    assert chunk.additional_data == {
        "has_images": False,
        "has_charts": False,
        "has_tables": True,
    }


def test_delete_document_removes_everything(
    processor, seed, storage, vector_store, session_factory
):
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, LONG_TEXT.encode())
    processor.process_document(doc.id)

    assert processor.delete_document(doc.id)

    assert seed.get_document(doc.id) is None
    assert chunks_of(session_factory, doc.id) == []
    assert vector_store.ids(str(tenant.id)) == set()
    assert storage.objects == {}
    assert not processor.delete_document(doc.id)


def test_abort_fails_a_pending_document(processor, seed):
    tenant = seed.tenant()
    doc = seed.document(tenant)

    assert processor.abort(doc.id, "Upload failed: timeout")
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.FAILED
    assert stored.error_message == "Upload failed: timeout"


def test_reprocess_tenant_documents(processor, seed):
    tenant = seed.tenant()
    other = seed.tenant()
    done = seed.document(tenant, status=DocumentStatus.COMPLETED, raw_text="Alpha text.")
    failed = seed.document(tenant, status=DocumentStatus.FAILED, raw_text="Beta text.")
    running = seed.document(tenant, status=DocumentStatus.PROCESSING, raw_text="Gamma.")
    foreign = seed.document(other, status=DocumentStatus.COMPLETED, raw_text="Other.")

    results = processor.reprocess_tenant_documents(tenant.id)

    assert set(results) == {done.id, failed.id}
    assert all(r.success for r in results.values())
    assert seed.get_document(running.id).status == DocumentStatus.PROCESSING
    assert seed.get_document(foreign.id).attempt == 0


def test_reingesting_replaces_instead_of_duplicating(
    processor, seed, storage, vector_store, session_factory
):
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, LONG_TEXT.encode())
    first = processor.process_document(doc.id)
    vectors = vector_store.ids(str(tenant.id))

    assert processor.lifecycle.request_reprocess(doc.id)
    second = processor.process_document(doc.id)

    assert second.chunk_count == first.chunk_count
    assert vector_store.ids(str(tenant.id)) == vectors
    assert len(chunks_of(session_factory, doc.id)) == first.chunk_count


def test_blank_file_completes_with_no_chunks(processor, seed, storage, vector_store):
    tenant = seed.tenant()
    doc = upload(seed, storage, tenant, None, b"  \n\n  ")

    result = processor.process_document(doc.id)

    assert result.success
    assert result.chunk_count == 0
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.COMPLETED
    assert stored.chunk_count == 0
    assert vector_store.ids(str(tenant.id)) == set()


def test_abort_leaves_finished_documents_alone(processor, seed):
    tenant = seed.tenant()
    failed = seed.document(tenant, status=DocumentStatus.FAILED, attempt=1)
    done = seed.document(tenant, status=DocumentStatus.COMPLETED, raw_text="Done.")

    assert not processor.abort(failed.id, "Upload failed: timeout")
    assert not processor.abort(done.id, "Upload failed: timeout")

    assert seed.get_document(failed.id).error_message is None
    assert seed.get_document(done.id).status == DocumentStatus.COMPLETED


NEW_TEXT = "Office hours are nine to five on weekdays."


def restart_with_new_text(processor, document_id):
    """What the recovery sweep and a content edit do while a worker is stuck."""

    def restart():
        assert processor.lifecycle.recover(document_id)
        assert processor.lifecycle.replace_content(document_id, NEW_TEXT)
        assert processor.process_document(document_id).success

    return restart


class InterruptedEmbeddings(KeywordEmbeddings):
    def __init__(self):
        super().__init__()
        self.interrupt = None

    def embed_documents(self, texts):
        if self.interrupt is not None:
            interrupt, self.interrupt = self.interrupt, None
            interrupt()
        return super().embed_documents(texts)


class InterruptedVectorStore(InMemoryVectorStore):
    def __init__(self):
        super().__init__()
        self.interrupt = None

    def upsert(self, namespace, records):
        if self.interrupt is not None:
            interrupt, self.interrupt = self.interrupt, None
            interrupt()
        super().upsert(namespace, records)


def build_processor(session_factory, embeddings, vector_store, storage):
    return DocumentProcessor(
        session_factory,
        extractor=ContentExtractor(),
        chunker=TextChunker(chunk_size=200, chunk_overlap=20),
        embeddings=embeddings,
        vector_store=vector_store,
        storage=storage,
        embedding_model_name="keyword-test",
    )


def assert_only_new_text_is_indexed(seed, vector_store, session_factory, tenant, doc):
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.COMPLETED
    assert stored.chunk_count == 1
    assert [c.content for c in chunks_of(session_factory, doc.id)] == [NEW_TEXT]
    assert vector_store.ids(str(tenant.id)) == {f"{doc.id}:0"}
    record = vector_store.namespaces[str(tenant.id)][f"{doc.id}:0"]
    assert record.metadata["content"] == NEW_TEXT


def test_superseded_attempt_does_not_write_vectors(seed, storage, session_factory):
    embeddings = InterruptedEmbeddings()
    vector_store = InMemoryVectorStore()
    processor = build_processor(session_factory, embeddings, vector_store, storage)
    tenant = seed.tenant()
    kb = seed.knowledge_base(tenant)
    doc = upload(seed, storage, tenant, kb, LONG_TEXT.encode())
    embeddings.interrupt = restart_with_new_text(processor, doc.id)

    result = processor.process_document(doc.id)

    assert not result.success
    assert "superseded" in result.error
    assert_only_new_text_is_indexed(seed, vector_store, session_factory, tenant, doc)


def test_superseded_attempt_restores_the_winners_vectors(seed, storage, session_factory):
    vector_store = InterruptedVectorStore()
    processor = build_processor(session_factory, KeywordEmbeddings(), vector_store, storage)
    tenant = seed.tenant()
    kb = seed.knowledge_base(tenant)
    doc = upload(seed, storage, tenant, kb, LONG_TEXT.encode())
    # The newer attempt finishes between the stale attempt's check and its write.
    vector_store.interrupt = restart_with_new_text(processor, doc.id)

    result = processor.process_document(doc.id)

    assert not result.success
    assert_only_new_text_is_indexed(seed, vector_store, session_factory, tenant, doc)
    record = vector_store.namespaces[str(tenant.id)][f"{doc.id}:0"]
    assert record.metadata["knowledge_base_id"] == str(kb.id)

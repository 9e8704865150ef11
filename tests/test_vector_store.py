import uuid

import pytest
from sqlalchemy import create_engine, delete
from sqlalchemy.orm import sessionmaker

from knowdesk.models.vector import EMBEDDING_DIMENSIONS, ChunkVector
from knowdesk.services.vector_store import PgVectorStore, VectorRecord, vector_id
from knowdesk.settings import settings

pytestmark = pytest.mark.skipif(
    settings.TEST_URL is None, reason="TEST_URL is not set; pgvector needs a migrated PostgreSQL"
)

MODEL = "BAAI/bge-small-en-v1.5"


def axis(i: int) -> list[float]:
    values = [0.0] * EMBEDDING_DIMENSIONS
    values[i] = 1.0
    return values


def blend(*weights: float) -> list[float]:
    values = [0.0] * EMBEDDING_DIMENSIONS
    for i, w in enumerate(weights):
        values[i] = w
    return values


def record(document_id, index, values, kb_id, content="", model=MODEL) -> VectorRecord:
    return VectorRecord(
        id=vector_id(document_id, index),
        values=values,
        metadata={
            "knowledge_base_id": str(kb_id),
            "embedding_model": model,
            "content": content or f"chunk {index}",
            "document_title": "Guide",
            "page_number": None,
        },
    )


@pytest.fixture
def tenant_id():
    return uuid.uuid4()


@pytest.fixture
def store(tenant_id):
    url = str(settings.TEST_URL).replace("postgresql+asyncpg", "postgresql+psycopg2")
    engine = create_engine(url, connect_args={"options": f"-c app.current_tenant={tenant_id}"})
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    yield PgVectorStore(factory)
    with factory.begin() as session:
        session.execute(delete(ChunkVector).where(ChunkVector.tenant_id == tenant_id))
    engine.dispose()


def test_upsert_overwrites_by_key(store, tenant_id):
    ns, doc, kb = str(tenant_id), uuid.uuid4(), uuid.uuid4()
    store.upsert(ns, [record(doc, 0, axis(0), kb, "old text")])
    store.upsert(ns, [record(doc, 0, axis(0), kb, "new text")])

    matches = store.query(ns, axis(0), 5, [str(kb)], MODEL)

    assert [m.id for m in matches] == [vector_id(doc, 0)]
    assert matches[0].metadata["content"] == "new text"
    assert matches[0].score == pytest.approx(1.0)


def test_delete_stale_keeps_lower_indexes(store, tenant_id):
    ns, doc, kb = str(tenant_id), uuid.uuid4(), uuid.uuid4()
    store.upsert(ns, [record(doc, i, axis(0), kb) for i in range(4)])

    store.delete_stale(ns, str(doc), keep_below=2)

    matches = store.query(ns, axis(0), 10, [str(kb)], MODEL)
    assert sorted(m.metadata["chunk_index"] for m in matches) == [0, 1]

    store.delete_by_document(ns, str(doc))
    assert store.query(ns, axis(0), 10, [str(kb)], MODEL) == []


def test_query_filters_knowledge_base_and_model(store, tenant_id):
    ns, doc, kb, other_kb = str(tenant_id), uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    store.upsert(
        ns,
        [
            record(doc, 0, axis(0), kb),
            record(doc, 1, axis(0), other_kb),
            record(doc, 2, axis(0), kb, model="other-model"),
        ],
    )

    matches = store.query(ns, axis(0), 10, [str(kb)], MODEL)

    assert [m.id for m in matches] == [vector_id(doc, 0)]
    assert store.query(ns, axis(0), 10, [], MODEL) == []


def test_query_orders_by_similarity_then_key(store, tenant_id):
    ns, kb = str(tenant_id), uuid.uuid4()
    first, second = sorted([uuid.uuid4(), uuid.uuid4()])
    store.upsert(
        ns,
        [
            record(second, 1, axis(0), kb),
            record(second, 0, axis(0), kb),
            record(first, 3, axis(0), kb),
            record(first, 0, blend(0.6, 0.8), kb),
        ],
    )

    matches = store.query(ns, axis(0), 10, [str(kb)], MODEL)

    assert [m.id for m in matches] == [
        vector_id(first, 3),
        vector_id(second, 0),
        vector_id(second, 1),
        vector_id(first, 0),
    ]
    assert matches[-1].score == pytest.approx(0.6)

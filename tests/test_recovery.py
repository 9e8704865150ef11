from datetime import timedelta

from sqlalchemy import update

from knowdesk.models.base import utcnow
from knowdesk.models.document import Document, DocumentStatus
from knowdesk.services.recovery import RecoverySweep


def age(session_factory, document_id, *, created=None, updated=None):
    values = {}
    if created is not None:
        values["created_at"] = utcnow() - created
    if updated is not None:
        values["updated_at"] = utcnow() - updated
    with session_factory.begin() as session:
        session.execute(update(Document).where(Document.id == document_id).values(**values))


def make_sweep(session_factory, processor, **kw):
    return RecoverySweep(session_factory, processor, processor.lifecycle, **kw)


def test_stuck_document_is_reset_and_reprocessed(processor, seed, session_factory):
    tenant = seed.tenant()
    doc = seed.document(
        tenant, status=DocumentStatus.PROCESSING, raw_text="Warranty lasts one year.", attempt=1
    )
    age(session_factory, doc.id, created=timedelta(hours=1), updated=timedelta(minutes=10))

    report = make_sweep(session_factory, processor).run()

    assert report.reset == [doc.id]
    assert report.results[doc.id].success
    stored = seed.get_document(doc.id)
    assert stored.status == DocumentStatus.COMPLETED
    assert stored.attempt == 2


def test_recently_updated_processing_document_is_left_alone(processor, seed, session_factory):
    tenant = seed.tenant()
    doc = seed.document(tenant, status=DocumentStatus.PROCESSING, raw_text="busy", attempt=1)
    age(session_factory, doc.id, updated=timedelta(minutes=1))

    report = make_sweep(session_factory, processor).run()

    assert report.reset == []
    assert report.processed == 0
    assert seed.get_document(doc.id).status == DocumentStatus.PROCESSING


def test_pending_documents_are_processed_oldest_first_in_batches(
    processor, seed, session_factory
):
    tenant = seed.tenant()
    docs = [seed.document(tenant, raw_text=f"Document number {n}.") for n in range(5)]
    for n, doc in enumerate(docs):
        age(session_factory, doc.id, created=timedelta(minutes=50 - n))

    sweep = make_sweep(session_factory, processor, batch_size=3)
    first = sweep.run()
    second = sweep.run()

    assert list(first.results) == [d.id for d in docs[:3]]
    assert list(second.results) == [d.id for d in docs[3:]]
    assert all(seed.get_document(d.id).status == DocumentStatus.COMPLETED for d in docs)


def test_documents_older_than_the_window_are_reported_not_retried(
    processor, seed, session_factory
):
    tenant = seed.tenant()
    old_pending = seed.document(tenant, raw_text="old")
    old_stuck = seed.document(tenant, status=DocumentStatus.PROCESSING, raw_text="old", attempt=1)
    age(session_factory, old_pending.id, created=timedelta(hours=30))
    age(session_factory, old_stuck.id, created=timedelta(hours=30), updated=timedelta(hours=29))

    report = make_sweep(session_factory, processor).run()

    assert set(report.abandoned) == {old_pending.id, old_stuck.id}
    assert report.reset == []
    assert report.processed == 0
    assert seed.get_document(old_pending.id).status == DocumentStatus.PENDING
    assert report.as_dict()["abandoned"] == [str(d) for d in report.abandoned]


def test_failed_reprocessing_is_reported(processor, seed, session_factory):
    tenant = seed.tenant()
    doc = seed.document(tenant)

    report = make_sweep(session_factory, processor).run()

    assert not report.results[doc.id].success
    assert seed.get_document(doc.id).status == DocumentStatus.FAILED

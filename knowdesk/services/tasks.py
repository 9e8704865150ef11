"""
Celery tasks for document ingestion and the recovery sweep.
"""

import os
import uuid
from dataclasses import asdict

from knowdesk.errors import StorageError
from knowdesk.services.container import (
    get_document_processor,
    get_recovery_sweep,
    get_storage,
)
from knowdesk.utils.logging_config import logger
from knowdesk.worker import celery_app

UPLOAD_MAX_RETRIES = 3


@celery_app.task(
    bind=True,
    name="upload_file_and_trigger_ingestion",
    max_retries=UPLOAD_MAX_RETRIES,
)
def upload_file_and_trigger_ingestion(
    self, local_file_path: str, document_id: str, storage_path: str, content_type: str
):
    """
    Celery task to upload a file to Supabase Storage and then trigger the ingestion task.
    The local file is kept until the upload succeeds or the last retry fails.
    """
    logger.info(f"Starting upload for document_id: {document_id}")
    try:
        with open(local_file_path, "rb") as f:
            get_storage().put(f.read(), storage_path, content_type)
    except StorageError as e:
        if self.request.retries < UPLOAD_MAX_RETRIES:
            raise self.retry(exc=e, countdown=2 ** self.request.retries)
        logger.error(f"Upload failed for document_id: {document_id}, giving up: {e}")
        get_document_processor().abort(uuid.UUID(document_id), f"Upload failed: {e}")
        _remove(local_file_path)
        raise

    _remove(local_file_path)
    logger.info(f"Successfully uploaded document_id: {document_id} to {storage_path}")
    process_document_task.delay(document_id)


def _remove(path: str) -> None:
    if os.path.exists(path):
        os.remove(path)


@celery_app.task(name="process_document")
def process_document_task(document_id: str) -> dict:
    """Runs one ingestion attempt for a PENDING document."""
    result = get_document_processor().process_document(uuid.UUID(document_id))
    return asdict(result)


@celery_app.task(name="reprocess_tenant_documents")
def reprocess_tenant_documents_task(tenant_id: str) -> dict:
    results = get_document_processor().reprocess_tenant_documents(uuid.UUID(tenant_id))
    return {str(doc_id): asdict(result) for doc_id, result in results.items()}


@celery_app.task(name="recover_documents")
def recover_documents() -> dict:
    return get_recovery_sweep().run().as_dict()

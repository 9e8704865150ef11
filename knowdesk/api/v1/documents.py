"""API endpoints for document management."""

import asyncio
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid_extensions import uuid7

from knowdesk.api.deps import (
    get_current_user,
    get_rls_session,
    require_admin,
    verify_platform_secret,
)
from knowdesk.models.document import Document, DocumentStatus
from knowdesk.models.user import User
from knowdesk.schemas.document import (
    ContentUpdateRequest,
    DocumentListResponse,
    DocumentResponse,
    DocumentUploadResponse,
    SweepResponse,
    TaskAcceptedResponse,
)
from knowdesk.services.container import (
    get_document_processor,
    get_recovery_sweep,
    get_state_machine,
)
from knowdesk.services.knowledge_bases import default_knowledge_base, find_knowledge_base
from knowdesk.services.tasks import (
    process_document_task,
    reprocess_tenant_documents_task,
    upload_file_and_trigger_ingestion,
)
from knowdesk.settings import settings
from knowdesk.utils.file_validator import validate_upload
from knowdesk.utils.logging_config import logger

router = APIRouter()

TEMP_DIR = "temp_files"


async def _get_owned_document(
    db: AsyncSession, document_id: uuid.UUID, current_user: User
) -> Document:
    doc = await db.scalar(
        select(Document).where(
            Document.id == document_id, Document.tenant_id == current_user.tenant_id
        )
    )
    if doc is None:
        raise HTTPException(status_code=404, detail="Document not found.")
    return doc


@router.post(
    "/upload",
    status_code=202,
    response_model=DocumentUploadResponse,
    summary="Upload a document for ingestion",
    description="Accepts a supported file, creates a PENDING document and triggers the ingestion workflow.",
)
async def upload_document(
    file: UploadFile,
    title: Optional[str] = Form(default=None),
    knowledge_base_id: Optional[uuid.UUID] = Form(default=None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> DocumentUploadResponse:
    file_type = await validate_upload(file)
    if knowledge_base_id is not None:
        kb = await find_knowledge_base(db, current_user.tenant_id, knowledge_base_id)
        if kb is None:
            raise HTTPException(status_code=404, detail="Knowledge base not found.")
    else:
        # Documents outside every knowledge base are never retrievable.
        kb = await default_knowledge_base(db, current_user.tenant_id)
    knowledge_base_id = kb.id

    file_name = os.path.basename(file.filename or "upload")
    os.makedirs(TEMP_DIR, exist_ok=True)
    temp_file_path = os.path.join(TEMP_DIR, f"{uuid7()}_{file_name}")

    total_size = 0
    try:
        with open(temp_file_path, "wb") as buffer:
            while chunk := await file.read(4096):
                total_size += len(chunk)
                if total_size > settings.MAX_FILE_SIZE:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File size exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)}MB limit.",
                    )
                buffer.write(chunk)
    except HTTPException:
        os.remove(temp_file_path)
        raise
    except OSError as e:
        logger.error(f"Failed to save uploaded file locally: {e}")
        if os.path.exists(temp_file_path):
            os.remove(temp_file_path)
        raise HTTPException(status_code=500, detail="Failed to save uploaded file.") from e

    document_id = uuid7()
    storage_path = f"{current_user.tenant_id}/{document_id}/{file_name}"
    doc = Document(
        id=document_id,
        tenant_id=current_user.tenant_id,
        knowledge_base_id=knowledge_base_id,
        title=title or os.path.splitext(file_name)[0],
        file_name=file_name,
        file_type=file_type,
        file_size=total_size,
        storage_path=storage_path,
        status=DocumentStatus.PENDING,
    )
    db.add(doc)
    await db.commit()

    task = upload_file_and_trigger_ingestion.delay(  # pyright: ignore[reportFunctionMemberAccess]
        local_file_path=temp_file_path,
        document_id=str(doc.id),
        storage_path=storage_path,
        content_type=file_type.content_type,
    )
    logger.info(f"Accepted document {doc.id} ({file_type.value}, {total_size} bytes)")
    return DocumentUploadResponse(
        id=doc.id,
        title=doc.title,
        file_name=doc.file_name,
        status=doc.status,
        task_id=task.id,
    )


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    status: Optional[DocumentStatus] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> DocumentListResponse:
    query = select(Document).where(Document.tenant_id == current_user.tenant_id)
    if status is not None:
        query = query.where(Document.status == status)
    documents = await db.scalars(query.order_by(Document.created_at.desc()))
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in documents.all()]
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> DocumentResponse:
    doc = await _get_owned_document(db, document_id, current_user)
    return DocumentResponse.model_validate(doc)


@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> None:
    """Removes the document together with its chunks, vectors and stored file."""
    await _get_owned_document(db, document_id, current_user)
    await asyncio.to_thread(get_document_processor().delete_document, document_id)


@router.post("/{document_id}/retry", status_code=202, response_model=TaskAcceptedResponse)
async def retry_document(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> TaskAcceptedResponse:
    """Queues a FAILED document for another ingestion attempt."""
    doc = await _get_owned_document(db, document_id, current_user)
    if doc.status != DocumentStatus.FAILED:
        raise HTTPException(status_code=409, detail="Only failed documents can be retried.")
    return await _queue_reprocess(document_id)


@router.post(
    "/{document_id}/reprocess", status_code=202, response_model=TaskAcceptedResponse
)
async def reprocess_document(
    document_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> TaskAcceptedResponse:
    """Re-chunks and re-indexes a document, reusing its cached text when present."""
    await _get_owned_document(db, document_id, current_user)
    return await _queue_reprocess(document_id)


async def _queue_reprocess(document_id: uuid.UUID) -> TaskAcceptedResponse:
    # IllegalTransition (document still PROCESSING) maps to 409.
    await asyncio.to_thread(get_state_machine().request_reprocess, document_id)
    task = process_document_task.delay(str(document_id))  # pyright: ignore[reportFunctionMemberAccess]
    return TaskAcceptedResponse(document_id=document_id, task_id=task.id)


@router.put(
    "/{document_id}/content", status_code=202, response_model=TaskAcceptedResponse
)
async def replace_document_content(
    document_id: uuid.UUID,
    body: ContentUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> TaskAcceptedResponse:
    """Replaces the extracted text of a document and indexes it again."""
    await _get_owned_document(db, document_id, current_user)
    await asyncio.to_thread(
        get_state_machine().replace_content, document_id, body.content
    )
    task = process_document_task.delay(str(document_id))  # pyright: ignore[reportFunctionMemberAccess]
    return TaskAcceptedResponse(document_id=document_id, task_id=task.id)


@router.post("/reprocess-all", status_code=202, response_model=TaskAcceptedResponse)
async def reprocess_all_documents(
    current_user: User = Depends(require_admin),
) -> TaskAcceptedResponse:
    task = reprocess_tenant_documents_task.delay(str(current_user.tenant_id))  # pyright: ignore[reportFunctionMemberAccess]
    return TaskAcceptedResponse(task_id=task.id)


@router.post(
    "/recover",
    response_model=SweepResponse,
    dependencies=[Depends(verify_platform_secret)],
    summary="Run the recovery sweep",
)
async def recover_documents() -> SweepResponse:
    report = await asyncio.to_thread(get_recovery_sweep().run)
    return SweepResponse(**report.as_dict())

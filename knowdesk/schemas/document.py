"""Pydantic schemas for document operations."""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from knowdesk.models.document import DocumentStatus, FileType


class DocumentUploadResponse(BaseModel):
    """Response schema for a document upload."""

    document_id: uuid.UUID = Field(
        ...,
        description="The unique identifier for the uploaded document.",
        alias="id",
    )
    title: str = Field(..., description="The title of the document.")
    file_name: str = Field(..., description="The name of the uploaded file.")
    status: DocumentStatus = Field(..., description="The current status of the document.")
    task_id: str = Field(..., description="The ID of the background ingestion task.")
    model_config = {"from_attributes": True, "populate_by_name": True}


class DocumentResponse(BaseModel):
    id: uuid.UUID
    knowledge_base_id: Optional[uuid.UUID] = None
    title: str
    file_name: str
    file_type: FileType
    file_size: int
    status: DocumentStatus
    error_message: Optional[str] = None
    chunk_count: int
    attempt: int
    processed_at: Optional[datetime] = None
    created_at: datetime
    model_config = {"from_attributes": True}


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]


class ContentUpdateRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Replacement text for the document.")


class TaskAcceptedResponse(BaseModel):
    document_id: Optional[uuid.UUID] = None
    task_id: str


class SweepResponse(BaseModel):
    reset: List[str]
    processed: dict
    abandoned: List[str]

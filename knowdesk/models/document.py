"""Document model tracking an uploaded file through the ingestion lifecycle."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowdesk.errors import UnsupportedFileType
from knowdesk.models.base import BaseModel, JSONType

if TYPE_CHECKING:
    from knowdesk.models.chunk import DocumentChunk


class DocumentStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FileType(enum.Enum):
    PDF = "pdf"
    TXT = "txt"
    MD = "md"
    HTML = "html"
    CSV = "csv"
    JSON = "json"

    @classmethod
    def from_mime(cls, content_type: str) -> "FileType":
        file_type = MIME_TYPES.get((content_type or "").split(";")[0].strip().lower())
        if file_type is None:
            raise UnsupportedFileType(content_type)
        return file_type

    @classmethod
    def parse(cls, value: "FileType | str") -> "FileType":
        """Accepts an enum member, its value ("pdf") or its name ("PDF")."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.lower() == member.value:
                return member
        raise UnsupportedFileType(text)

    @property
    def content_type(self) -> str:
        return next(mime for mime, ft in MIME_TYPES.items() if ft is self)


MIME_TYPES: dict[str, FileType] = {
    "application/pdf": FileType.PDF,
    "text/plain": FileType.TXT,
    "text/markdown": FileType.MD,
    "text/html": FileType.HTML,
    "text/csv": FileType.CSV,
    "application/json": FileType.JSON,
}


class Document(BaseModel):
    __tablename__ = "documents"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    knowledge_base_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("knowledge_bases.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_type: Mapped[FileType] = mapped_column(
        Enum(FileType, native_enum=False), nullable=False
    )
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    storage_path: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    raw_text: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Cached extracted text, reused on reprocessing."
    )
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, native_enum=False),
        nullable=False,
        default=DocumentStatus.PENDING,
        index=True,
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    chunk_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    attempt: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Incremented on every PENDING -> PROCESSING transition.",
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=True, default=list)

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        "DocumentChunk",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentChunk.chunk_index",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, title='{self.title}', status='{self.status.value}')>"

"""File validation utilities."""

from fastapi import HTTPException, UploadFile

from knowdesk.errors import UnsupportedFileType
from knowdesk.models.document import MIME_TYPES, FileType

PDF_MAGIC = b"%PDF-"


async def validate_upload(file: UploadFile) -> FileType:
    """
    Validates that an uploaded file has a supported content type.

    PDFs must also start with the PDF magic bytes.

    Args:
        file: The file uploaded via a FastAPI endpoint.

    Returns:
        The file type matching the declared content type.

    Raises:
        HTTPException: If the type is unsupported or the content does not match it.
    """
    try:
        file_type = FileType.from_mime(file.content_type or "")
    except UnsupportedFileType as e:
        raise HTTPException(
            status_code=415,
            detail=f"Invalid file type. Accepted types: {', '.join(MIME_TYPES)}.",
        ) from e

    if file_type is FileType.PDF:
        magic_bytes = await file.read(len(PDF_MAGIC))
        await file.seek(0)
        if magic_bytes != PDF_MAGIC:
            raise HTTPException(
                status_code=400,
                detail="Invalid file content. File does not appear to be a valid PDF.",
            )
    return file_type

"""Maps service exceptions raised inside request handlers to HTTP responses."""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from knowdesk.errors import (
    AgentInactive,
    AgentNotFound,
    ConversationNotFound,
    EmbeddingProviderError,
    IllegalTransition,
    InsufficientBalance,
    ModelProviderError,
    StorageError,
    UnsupportedFileType,
    VectorStoreError,
)
from knowdesk.utils.logging_config import logger

STATUS_CODES: dict[type[Exception], int] = {
    AgentNotFound: status.HTTP_404_NOT_FOUND,
    ConversationNotFound: status.HTTP_404_NOT_FOUND,
    AgentInactive: status.HTTP_409_CONFLICT,
    IllegalTransition: status.HTTP_409_CONFLICT,
    InsufficientBalance: status.HTTP_402_PAYMENT_REQUIRED,
    UnsupportedFileType: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    EmbeddingProviderError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ModelProviderError: status.HTTP_503_SERVICE_UNAVAILABLE,
    VectorStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def knowdesk_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = next(STATUS_CODES[t] for t in type(exc).__mro__ if t in STATUS_CODES)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    for exc_type in STATUS_CODES:
        app.add_exception_handler(exc_type, knowdesk_error_handler)

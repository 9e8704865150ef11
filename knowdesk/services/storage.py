"""Service for interacting with Supabase Storage."""

from typing import Protocol

from supabase import Client, StorageException

from knowdesk.config.supabase import supabase_admin_sync
from knowdesk.errors import StorageError
from knowdesk.settings import settings
from knowdesk.utils.logging_config import logger


class ObjectStorage(Protocol):
    def put(self, data: bytes, key: str, content_type: str) -> str: ...

    def get(self, key: str) -> bytes: ...

    def delete(self, key: str) -> None: ...


class SupabaseObjectStorage:
    """Stores uploaded files in a Supabase Storage bucket."""

    def __init__(self, client: Client | None = None, bucket: str | None = None):
        self._client = client
        self.bucket = bucket or settings.KNOWLEDGE_BASE_BUCKET

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = supabase_admin_sync()
        return self._client

    def put(self, data: bytes, key: str, content_type: str) -> str:
        """
        Uploads a file to the storage bucket, overwriting any existing object.

        Returns:
            The public URL of the stored object.
        """
        try:
            self.client.storage.from_(self.bucket).upload(
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except StorageException as exc:
            logger.error(f"Failed to upload file to storage: {exc}", exc_info=True)
            raise StorageError(f"Upload of {key} failed: {exc}") from exc
        logger.info(f"File uploaded to storage at path: {key}")
        return self.client.storage.from_(self.bucket).get_public_url(key)

    def get(self, key: str) -> bytes:
        try:
            return self.client.storage.from_(self.bucket).download(key)
        except StorageException as exc:
            logger.error(f"Failed to download {key} from storage: {exc}")
            raise StorageError(f"Download of {key} failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self.client.storage.from_(self.bucket).remove([key])
        except StorageException as exc:
            logger.error(f"Failed to delete {key} from storage: {exc}")
            raise StorageError(f"Delete of {key} failed: {exc}") from exc
        logger.info(f"File deleted from storage at path: {key}")

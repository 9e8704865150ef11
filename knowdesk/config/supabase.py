"""Supabase connection and client management."""

import asyncio
from typing import Optional

from supabase import (
    AsyncClient,
    Client,
    StorageException,
    SupabaseException,
    acreate_client,
    create_client,
)

from knowdesk.settings import settings
from knowdesk.utils.logging_config import logger

_supabase_admin_client: Optional[AsyncClient] = None
_supabase_admin_lock = asyncio.Lock()


async def supabase_admin() -> AsyncClient:
    global _supabase_admin_client
    async with _supabase_admin_lock:
        if _supabase_admin_client is None:
            _supabase_admin_client = await acreate_client(
                settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY
            )
    return _supabase_admin_client


def supabase_admin_sync() -> Client:
    """Service-role client for the Celery worker."""
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
    except SupabaseException as e:
        logger.error(f"Supabase sync client creation error: {e}")
        raise


async def check_supabase_connection():
    """
    Checks the storage bucket used for uploaded documents is reachable.
    """
    try:
        supabase_client = await supabase_admin()
        await supabase_client.storage.get_bucket(settings.KNOWLEDGE_BASE_BUCKET)
        logger.info("Supabase connection successful")
    except StorageException as e:
        logger.error(f"Supabase connection error: {e}")
        raise

"""Knowledge base lookups shared by the upload route and the seed script."""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowdesk.models.knowledge_base import KnowledgeBase
from knowdesk.utils.logging_config import logger

DEFAULT_KNOWLEDGE_BASE_NAME = "Default"


async def find_knowledge_base(
    session: AsyncSession, tenant_id: uuid.UUID, knowledge_base_id: uuid.UUID
) -> Optional[KnowledgeBase]:
    return await session.scalar(
        select(KnowledgeBase).where(
            KnowledgeBase.id == knowledge_base_id,
            KnowledgeBase.tenant_id == tenant_id,
        )
    )


async def default_knowledge_base(session: AsyncSession, tenant_id: uuid.UUID) -> KnowledgeBase:
    """
    Returns the tenant's oldest knowledge base, creating a "Default" one when
    the tenant has none. The new row is flushed, not committed.
    """
    kb = await session.scalar(
        select(KnowledgeBase)
        .where(KnowledgeBase.tenant_id == tenant_id)
        .order_by(KnowledgeBase.created_at, KnowledgeBase.id)
        .limit(1)
    )
    if kb is None:
        kb = KnowledgeBase(tenant_id=tenant_id, name=DEFAULT_KNOWLEDGE_BASE_NAME)
        session.add(kb)
        await session.flush()
        logger.info(f"Created default knowledge base {kb.id} for tenant {tenant_id}")
    return kb

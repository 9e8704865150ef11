"""Utility functions for validating tenant-related information."""

import uuid
from urllib.parse import urlparse

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowdesk.models.agent import Agent
from knowdesk.models.tenant import Tenant
from knowdesk.settings import settings


async def validate_tenant_and_origin(
    request: Request, tenant_id: uuid.UUID, db_session: AsyncSession
) -> Tenant:
    """
    Validates the origin domain against the tenant's allowed domains
    and retrieves the tenant object.

    Args:
        request (Request): The FastAPI request object.
        tenant_id (uuid.UUID): The ID of the tenant to validate.
        db_session (AsyncSession): The SQLAlchemy async database session.

    Returns:
        Tenant: The validated Tenant object.

    Raises:
        HTTPException: If the origin header is missing, tenant is not found,
                       or the domain is not allowed.
    """
    origin = request.headers.get("origin")
    if not origin and not settings.DEBUG:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing Origin header")

    tenant = await db_session.scalar(select(Tenant).where(Tenant.id == tenant_id))

    if not tenant:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Tenant not found")

    host = (urlparse(origin).hostname or "") if origin else ""
    if not settings.DEBUG and host not in (tenant.allowed_domains or []):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Domain not allowed")

    return tenant


async def validate_agent(
    tenant: Tenant, agent_id: uuid.UUID, db_session: AsyncSession
) -> Agent:
    """Returns the tenant's agent, or 404 when it belongs elsewhere or is disabled."""
    agent = await db_session.scalar(
        select(Agent).where(Agent.id == agent_id, Agent.tenant_id == tenant.id)
    )
    if agent is None or not agent.is_active:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Agent not found")
    return agent

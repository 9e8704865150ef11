"""API endpoints for tenant settings."""

from fastapi import APIRouter, Depends
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from knowdesk.api.deps import get_rls_session, require_admin
from knowdesk.models.tenant import Tenant
from knowdesk.models.user import User
from knowdesk.schemas.tenant import CredentialUpdateRequest, CredentialUpdateResponse
from knowdesk.services.container import get_client_cache
from knowdesk.utils.logging_config import logger

router = APIRouter()


@router.put("/credentials", response_model=CredentialUpdateResponse)
async def update_credentials(
    body: CredentialUpdateRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_rls_session),
) -> CredentialUpdateResponse:
    """
    Sets or clears the tenant's own model provider key.

    Cached model clients for the tenant are dropped so the next call uses
    the new key.
    """
    api_key = body.llm_api_key or None
    await db.execute(
        update(Tenant).where(Tenant.id == current_user.tenant_id).values(llm_api_key=api_key)
    )
    await db.commit()
    get_client_cache().invalidate(str(current_user.tenant_id))
    logger.info(f"Updated model credentials for tenant {current_user.tenant_id}")
    return CredentialUpdateResponse(uses_own_key=api_key is not None)

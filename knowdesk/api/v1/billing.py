"""API endpoints for the tenant's usage balance."""

import uuid

from fastapi import APIRouter, Depends, Query

from knowdesk.api.deps import get_current_user, verify_platform_secret
from knowdesk.models.user import User
from knowdesk.schemas.billing import (
    BalanceResponse,
    BonusRequest,
    TransactionListResponse,
    TransactionResponse,
)
from knowdesk.services.container import get_usage_ledger
from knowdesk.services.pricing import estimate_messages_remaining
from knowdesk.settings import settings

router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    model: str = Query(default=settings.DEFAULT_CHAT_MODEL),
    current_user: User = Depends(get_current_user),
) -> BalanceResponse:
    balance = await get_usage_ledger().get_balance(current_user.tenant_id)
    return BalanceResponse(
        balance=balance,
        model=model,
        estimated_messages_remaining=estimate_messages_remaining(balance, model),
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
) -> TransactionListResponse:
    transactions = await get_usage_ledger().list_transactions(
        current_user.tenant_id, limit=limit
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions]
    )


@router.post(
    "/tenants/{tenant_id}/bonus",
    response_model=BalanceResponse,
    dependencies=[Depends(verify_platform_secret)],
)
async def add_bonus(tenant_id: uuid.UUID, body: BonusRequest) -> BalanceResponse:
    """Grants free usage units to a tenant."""
    balance = await get_usage_ledger().add_bonus(tenant_id, body.amount, body.reason)
    model = settings.DEFAULT_CHAT_MODEL
    return BalanceResponse(
        balance=balance,
        model=model,
        estimated_messages_remaining=estimate_messages_remaining(balance, model),
    )

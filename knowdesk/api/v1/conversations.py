"""API endpoints for staff working on handed-off conversations."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowdesk.api.deps import get_current_user, get_rls_session
from knowdesk.models.conversation import Conversation, ConversationStatus
from knowdesk.models.user import User
from knowdesk.schemas.chat import (
    ChatHistoryResponse,
    ChatMessage,
    ConversationResponse,
    ConversationListResponse,
    MessageResponse,
)
from knowdesk.services.container import get_conversation_service

router = APIRouter()


async def _ensure_owned(
    db: AsyncSession, conversation_id: uuid.UUID, current_user: User
) -> None:
    owned = await db.scalar(
        select(Conversation.id).where(
            Conversation.id == conversation_id,
            Conversation.tenant_id == current_user.tenant_id,
        )
    )
    if owned is None:
        raise HTTPException(status_code=404, detail="Conversation not found.")


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    handed_off: bool = False,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> ConversationListResponse:
    query = select(Conversation).where(Conversation.tenant_id == current_user.tenant_id)
    if handed_off:
        query = query.where(Conversation.status == ConversationStatus.HANDED_OFF)
    conversations = await db.scalars(query.order_by(Conversation.updated_at.desc()))
    return ConversationListResponse(
        conversations=[ConversationResponse.model_validate(c) for c in conversations.all()]
    )


@router.get("/{conversation_id}/messages", response_model=ChatHistoryResponse)
async def get_messages(
    conversation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> ChatHistoryResponse:
    await _ensure_owned(db, conversation_id, current_user)
    messages = await get_conversation_service().history(conversation_id)
    return ChatHistoryResponse(
        messages=[MessageResponse.model_validate(m) for m in messages]
    )


@router.post("/{conversation_id}/reply", status_code=201)
async def reply(
    conversation_id: uuid.UUID,
    body: ChatMessage,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> dict[str, str]:
    await _ensure_owned(db, conversation_id, current_user)
    await get_conversation_service().add_human_reply(conversation_id, body.content)
    return {"status": "sent"}


@router.post("/{conversation_id}/release")
async def release(
    conversation_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> dict[str, bool]:
    """Hands the conversation back to the AI agent."""
    await _ensure_owned(db, conversation_id, current_user)
    released = await get_conversation_service().reset_handoff(conversation_id)
    return {"released": released}

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowdesk.api.deps import ensure_balance, get_chat_session
from knowdesk.config.db import get_db_session
from knowdesk.models.agent import Agent
from knowdesk.schemas.chat import (
    ChatHistoryResponse,
    ChatMessage,
    ChatReplyResponse,
    InitChatRequest,
    InitChatResponse,
    MessageResponse,
)
from knowdesk.services.container import get_conversation_service
from knowdesk.utils.jwt_manager import create_chat_session_jwt
from knowdesk.utils.tenant_validator import validate_agent, validate_tenant_and_origin

router = APIRouter()


@router.post("/init", response_model=InitChatResponse)
async def init_chat(
    request: Request,
    chat_request: InitChatRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """
    Initialize a new chat session.
    1. Validates the origin domain and the agent.
    2. Opens (or resumes) a conversation.
    3. Issues a JWT for the anonymous session.
    """
    tenant = await validate_tenant_and_origin(
        request=request, tenant_id=chat_request.tenant_id, db_session=db
    )
    agent = await validate_agent(tenant, chat_request.agent_id, db)
    conversation = await get_conversation_service().start_conversation(
        tenant.id, agent.id, chat_request.external_user_id
    )
    token = create_chat_session_jwt(
        tenant_id=str(tenant.id),
        agent_id=str(agent.id),
        conversation_id=str(conversation.id),
    )
    return InitChatResponse(token=token)


@router.get("/history", response_model=ChatHistoryResponse)
async def get_history(
    chat_session: tuple[uuid.UUID, uuid.UUID, uuid.UUID] = Depends(get_chat_session),
):
    """
    Retrieve the chat history for the current session.
    """
    _, _, conversation_id = chat_session
    messages = await get_conversation_service().history(conversation_id)
    return ChatHistoryResponse(
        messages=[MessageResponse.model_validate(m) for m in messages]
    )


@router.post("/message", response_model=ChatReplyResponse)
async def send_message(
    content: ChatMessage,
    chat_session: tuple[uuid.UUID, uuid.UUID, uuid.UUID] = Depends(get_chat_session),
    db: AsyncSession = Depends(get_db_session),
):
    """
    Saves the user message and returns the agent's answer, unless the
    conversation is already with a human.
    """
    tenant_id, agent_id, conversation_id = chat_session
    model = await db.scalar(select(Agent.model).where(Agent.id == agent_id))
    if model is not None:
        await ensure_balance(tenant_id, model)

    reply = await get_conversation_service().answer_for_conversation(
        conversation_id, content.content
    )
    return ChatReplyResponse(
        conversation_id=reply.conversation_id,
        content=reply.content,
        handed_off=reply.handed_off,
        routed_to_human=reply.routed_to_human,
        confidence=reply.answer.confidence if reply.answer else None,
    )

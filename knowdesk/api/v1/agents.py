"""API endpoints for testing agents from the dashboard."""

import uuid
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from knowdesk.api.deps import ensure_balance, get_current_user, get_rls_session
from knowdesk.models.agent import Agent
from knowdesk.models.user import User
from knowdesk.schemas.agent import AgentAnswerResponse, AgentInfoResponse, AskRequest
from knowdesk.services.container import get_query_engine

router = APIRouter()


async def _get_owned_agent(db: AsyncSession, agent_id: uuid.UUID, current_user: User) -> Agent:
    agent = await db.scalar(
        select(Agent).where(Agent.id == agent_id, Agent.tenant_id == current_user.tenant_id)
    )
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found.")
    return agent


@router.get("/{agent_id}/test", response_model=AgentInfoResponse)
async def get_agent_info(
    agent_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> AgentInfoResponse:
    agent = await _get_owned_agent(db, agent_id, current_user)
    return AgentInfoResponse(
        id=agent.id,
        name=agent.name,
        model=agent.model,
        is_active=agent.is_active,
        confidence_threshold=agent.confidence_threshold,
        knowledge_base_count=len(agent.knowledge_bases),
    )


@router.post("/{agent_id}/test", response_model=AgentAnswerResponse)
async def test_agent(
    agent_id: uuid.UUID,
    body: AskRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_session),
) -> AgentAnswerResponse:
    """
    Asks an agent a question outside of any conversation.

    The answer is charged to the tenant like any other.
    """
    agent = await _get_owned_agent(db, agent_id, current_user)
    await ensure_balance(current_user.tenant_id, agent.model)
    answer = await get_query_engine().answer(current_user.tenant_id, agent_id, body.question)
    return AgentAnswerResponse(
        agent_id=agent_id,
        content=answer.content,
        confidence=answer.confidence,
        citations=[asdict(c) for c in answer.citations],
        should_handoff=answer.should_handoff,
        model=answer.model,
        tokens_used=answer.tokens_used,
        latency_ms=answer.latency_ms,
        usage=asdict(answer.usage),
    )

"""
Conversation handling around the query engine.

Stores every inbound and outbound message and records handoffs. Once a
conversation is handed off, new messages wait for a human instead of being
answered by the AI.
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowdesk.agent.constructor import AgentAnswer, QueryEngine
from knowdesk.agent.prompts import UNABLE_TO_ANSWER_MESSAGE
from knowdesk.errors import (
    ConversationNotFound,
    EmbeddingProviderError,
    ModelProviderError,
    QueryError,
)
from knowdesk.models.agent import DEFAULT_FALLBACK_MESSAGE, Agent
from knowdesk.models.base import utcnow
from knowdesk.models.conversation import Conversation, ConversationStatus
from knowdesk.models.message import Message, SenderType
from knowdesk.utils.logging_config import logger

# Below this confidence the agent's fallback message is appended to a handoff.
LOW_CONFIDENCE = 0.5


@dataclass
class ConversationReply:
    conversation_id: uuid.UUID
    content: Optional[str]
    handed_off: bool
    routed_to_human: bool = False
    answer: Optional[AgentAnswer] = None


class ConversationService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: QueryEngine,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.engine = engine
        self.clock = clock

    async def start_conversation(
        self,
        tenant_id: uuid.UUID,
        agent_id: uuid.UUID,
        external_user_id: Optional[str] = None,
    ) -> Conversation:
        """Returns the user's open conversation with the agent, creating one if needed."""
        async with self.session_factory() as session:
            if external_user_id:
                existing = await session.scalar(
                    select(Conversation)
                    .where(
                        Conversation.tenant_id == tenant_id,
                        Conversation.agent_id == agent_id,
                        Conversation.external_user_id == external_user_id,
                        Conversation.status != ConversationStatus.RESOLVED,
                    )
                    .order_by(Conversation.created_at.desc())
                )
                if existing is not None:
                    return existing
            conversation = Conversation(
                tenant_id=tenant_id,
                agent_id=agent_id,
                external_user_id=external_user_id,
            )
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)
            logger.info(f"Started conversation {conversation.id} with agent {agent_id}")
            return conversation

    async def _load(self, session: AsyncSession, conversation_id: uuid.UUID) -> Conversation:
        conversation = await session.get(Conversation, conversation_id)
        if conversation is None:
            raise ConversationNotFound(str(conversation_id))
        return conversation

    async def _store(
        self, conversation: Conversation, sender: SenderType, content: str, **fields
    ) -> None:
        async with self.session_factory.begin() as session:
            session.add(
                Message(
                    tenant_id=conversation.tenant_id,
                    conversation_id=conversation.id,
                    sender_type=sender,
                    content=content,
                    **fields,
                )
            )

    async def _hand_off(self, conversation_id: uuid.UUID) -> None:
        async with self.session_factory.begin() as session:
            await session.execute(
                update(Conversation)
                .where(Conversation.id == conversation_id)
                .values(
                    status=ConversationStatus.HANDED_OFF,
                    is_handed_off=True,
                    handed_off_at=self.clock(),
                )
                .execution_options(synchronize_session=False)
            )
        logger.info(f"Conversation {conversation_id} handed off to a human")

    async def answer_for_conversation(
        self, conversation_id: uuid.UUID, text: str
    ) -> ConversationReply:
        """
        Handles one inbound user message.

        Raises:
            ConversationNotFound: if the conversation does not exist.
        """
        async with self.session_factory() as session:
            conversation = await self._load(session, conversation_id)
            fallback = await session.scalar(
                select(Agent.fallback_message).where(Agent.id == conversation.agent_id)
            )
        fallback = fallback or DEFAULT_FALLBACK_MESSAGE

        await self._store(conversation, SenderType.USER, text)

        if conversation.is_handed_off:
            logger.info(f"Conversation {conversation_id} is with a human; not answering")
            return ConversationReply(
                conversation_id, content=None, handed_off=True, routed_to_human=True
            )

        try:
            answer = await self.engine.answer(
                conversation.tenant_id, conversation.agent_id, text
            )
        except (QueryError, EmbeddingProviderError, ModelProviderError) as e:
            logger.error(f"Could not answer in conversation {conversation_id}: {e}")
            await self._store(conversation, SenderType.AI, UNABLE_TO_ANSWER_MESSAGE)
            await self._hand_off(conversation_id)
            return ConversationReply(
                conversation_id, content=UNABLE_TO_ANSWER_MESSAGE, handed_off=True
            )

        content = answer.content
        if answer.should_handoff:
            await self._hand_off(conversation_id)
            if answer.confidence < LOW_CONFIDENCE and fallback not in content:
                content = f"{content}\n\n{fallback}"

        await self._store(
            conversation,
            SenderType.AI,
            content,
            confidence=answer.confidence,
            tokens_used=answer.tokens_used,
            latency_ms=answer.latency_ms,
            citations=[asdict(c) for c in answer.citations],
        )
        return ConversationReply(
            conversation_id,
            content=content,
            handed_off=answer.should_handoff,
            answer=answer,
        )

    async def add_human_reply(self, conversation_id: uuid.UUID, text: str) -> None:
        async with self.session_factory() as session:
            conversation = await self._load(session, conversation_id)
        await self._store(conversation, SenderType.HUMAN_AGENT, text)

    async def reset_handoff(self, conversation_id: uuid.UUID) -> bool:
        """Returns a handed-off conversation to the AI."""
        async with self.session_factory.begin() as session:
            result = await session.execute(
                update(Conversation)
                .where(
                    Conversation.id == conversation_id,
                    Conversation.status == ConversationStatus.HANDED_OFF,
                )
                .values(
                    status=ConversationStatus.ACTIVE,
                    is_handed_off=False,
                    handed_off_at=None,
                )
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def history(self, conversation_id: uuid.UUID) -> list[Message]:
        async with self.session_factory() as session:
            await self._load(session, conversation_id)
            result = await session.scalars(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at, Message.id)
            )
            return list(result.all())

"""Agent model: an assistant configuration scoped to a set of knowledge bases."""

import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowdesk.models.base import Base, BaseModel

if TYPE_CHECKING:
    from knowdesk.models.knowledge_base import KnowledgeBase

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful customer support assistant for our company. "
    "Keep the answer concise and professional."
)
DEFAULT_FALLBACK_MESSAGE = (
    "I'm not sure about that. Let me connect you with someone who can help."
)

agent_knowledge_bases = Table(
    "agent_knowledge_bases",
    Base.metadata,
    Column(
        "agent_id", ForeignKey("agents.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "knowledge_base_id",
        ForeignKey("knowledge_bases.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Agent(BaseModel):
    __tablename__ = "agents"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model: Mapped[str] = mapped_column(
        String(100), nullable=False, default="gemini-2.5-flash-lite"
    )
    system_prompt: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_SYSTEM_PROMPT
    )
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.3)
    max_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=1024)
    confidence_threshold: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.7
    )
    fallback_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    knowledge_bases: Mapped[list["KnowledgeBase"]] = relationship(
        "KnowledgeBase", secondary=agent_knowledge_bases, lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, name='{self.name}', model='{self.model}')>"

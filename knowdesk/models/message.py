"""Message model for storing conversation history."""

import enum
import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Enum as EnumType
from sqlalchemy import Float, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowdesk.models.base import BaseModel, JSONType

if TYPE_CHECKING:
    from knowdesk.models.conversation import Conversation


class SenderType(enum.Enum):
    USER = "user"
    AI = "ai"
    HUMAN_AGENT = "human_agent"


class Message(BaseModel):
    __tablename__ = "messages"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_type: Mapped[SenderType] = mapped_column(
        EnumType(SenderType, native_enum=False),
        nullable=False,
        default=SenderType.USER,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tokens_used: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    latency_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    citations: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="messages"
    )

    def __repr__(self) -> str:
        return f"<Message(id={self.id}, conversation_id={self.conversation_id}, sender='{self.sender_type.value}')>"

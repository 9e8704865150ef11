"""Conversation model for tracking an end user's exchange with an agent."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime
from sqlalchemy import Enum as EnumType
from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from knowdesk.models.base import BaseModel

if TYPE_CHECKING:
    from knowdesk.models.message import Message


class ConversationStatus(enum.Enum):
    ACTIVE = "active"
    HANDED_OFF = "handed_off"
    RESOLVED = "resolved"


class Conversation(BaseModel):
    __tablename__ = "conversations"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[ConversationStatus] = mapped_column(
        EnumType(ConversationStatus, native_enum=False),
        nullable=False,
        default=ConversationStatus.ACTIVE,
    )
    is_handed_off: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    handed_off_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    external_user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Identifier of the end user on the messaging channel, if available.",
    )

    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, status='{self.status.value}')>"

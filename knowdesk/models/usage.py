"""Append-only usage ledger entries."""

import enum
import uuid
from typing import Optional

from sqlalchemy import Enum as EnumType
from sqlalchemy import ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from knowdesk.models.base import BaseModel


class TransactionType(enum.Enum):
    USAGE = "usage"
    PURCHASE = "purchase"
    BONUS = "bonus"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"


class UsageTransaction(BaseModel):
    __tablename__ = "usage_transactions"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[TransactionType] = mapped_column(
        EnumType(TransactionType, native_enum=False), nullable=False
    )
    amount: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Signed: negative for usage, positive for credits."
    )
    balance: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Tenant balance right after this entry."
    )
    model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    input_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<UsageTransaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"

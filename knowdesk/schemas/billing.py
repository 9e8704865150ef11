import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from knowdesk.models.usage import TransactionType


class BalanceResponse(BaseModel):
    balance: int
    model: str
    estimated_messages_remaining: int


class TransactionResponse(BaseModel):
    id: uuid.UUID
    type: TransactionType
    amount: int
    balance: int
    model: Optional[str] = None
    agent_id: Optional[uuid.UUID] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime
    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    transactions: List[TransactionResponse]


class BonusRequest(BaseModel):
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)

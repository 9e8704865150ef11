import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from knowdesk.models.conversation import ConversationStatus
from knowdesk.models.message import SenderType


class ChatMessage(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)


class InitChatRequest(BaseModel):
    tenant_id: uuid.UUID
    agent_id: uuid.UUID
    external_user_id: Optional[str] = None


class InitChatResponse(BaseModel):
    token: str


class MessageResponse(BaseModel):
    """Pydantic model for serializing SQLAlchemy Message objects."""

    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_type: SenderType
    content: str
    confidence: Optional[float] = None
    created_at: datetime
    model_config = {"from_attributes": True}


class ChatHistoryResponse(BaseModel):
    messages: List[MessageResponse]


class ChatReplyResponse(BaseModel):
    conversation_id: uuid.UUID
    content: Optional[str] = None
    handed_off: bool
    routed_to_human: bool
    confidence: Optional[float] = None


class ConversationResponse(BaseModel):
    id: uuid.UUID
    agent_id: uuid.UUID
    status: ConversationStatus
    is_handed_off: bool
    handed_off_at: Optional[datetime] = None
    external_user_id: Optional[str] = None
    created_at: datetime
    model_config = {"from_attributes": True}


class ConversationListResponse(BaseModel):
    conversations: List[ConversationResponse]

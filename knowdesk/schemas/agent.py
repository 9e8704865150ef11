import uuid
from typing import List, Optional

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=4000)


class CitationResponse(BaseModel):
    document_id: str
    document_title: str
    chunk_index: int
    page_number: Optional[int] = None
    score: float
    model_config = {"from_attributes": True}


class UsageResponse(BaseModel):
    tokens_charged: int
    new_balance: Optional[int] = None
    insufficient_balance: bool
    model_config = {"from_attributes": True}


class AgentAnswerResponse(BaseModel):
    agent_id: uuid.UUID
    content: str
    confidence: float
    citations: List[CitationResponse]
    should_handoff: bool
    model: str
    tokens_used: int
    latency_ms: int
    usage: UsageResponse


class AgentInfoResponse(BaseModel):
    id: uuid.UUID
    name: str
    model: str
    is_active: bool
    confidence_threshold: float
    knowledge_base_count: int

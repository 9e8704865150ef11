import uuid
from dataclasses import dataclass, field
from typing import Optional, TypedDict

from knowdesk.services.llm import Completion


@dataclass(frozen=True)
class AgentConfig:
    """Snapshot of an agent row, resolved before the graph runs."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    model: str
    system_prompt: str
    temperature: float
    max_tokens: int
    confidence_threshold: float
    fallback_message: str
    knowledge_base_ids: list[str] = field(default_factory=list)
    api_key: Optional[str] = None


@dataclass(frozen=True)
class RetrievedPassage:
    document_id: str
    chunk_index: int
    content: str
    document_title: str
    page_number: Optional[int]
    score: float


@dataclass(frozen=True)
class Citation:
    document_id: str
    document_title: str
    chunk_index: int
    page_number: Optional[int]
    score: float


class AgentState(TypedDict, total=False):
    """The state of the agent."""

    tenant_id: str
    question: str
    agent: AgentConfig
    passages: list[RetrievedPassage]
    completion: Optional[Completion]
    latency_ms: int
    content: str
    confidence: float
    should_handoff: bool
    citations: list[Citation]

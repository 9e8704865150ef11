"""
The retrieval-augmented query engine.

The LangGraph graph runs retrieve -> generate -> score; generation is skipped
when nothing was retrieved. QueryEngine resolves the agent before the graph
and charges usage after it.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from langchain_core.embeddings import Embeddings
from langgraph.graph import END, START, StateGraph
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowdesk.agent.nodes.generation import generate_answer
from knowdesk.agent.nodes.retrieval import retrieve_passages
from knowdesk.agent.nodes.scoring import score_answer
from knowdesk.agent.state import AgentConfig, AgentState, Citation
from knowdesk.errors import AgentInactive, AgentNotFound, InsufficientBalance
from knowdesk.models.agent import DEFAULT_FALLBACK_MESSAGE, Agent
from knowdesk.models.tenant import Tenant
from knowdesk.services.billing import UsageLedger
from knowdesk.services.llm import LanguageModelProvider
from knowdesk.services.vector_store import VectorStore
from knowdesk.utils.logging_config import logger


@dataclass(frozen=True)
class QueryDependencies:
    embeddings: Embeddings
    vector_store: VectorStore
    llm: LanguageModelProvider
    embedding_model: str
    top_k: int = 5
    min_score: float = 0.3
    similarity_floor: float = 0.35
    similarity_ceiling: float = 0.8
    uncertain_cap: float = 0.2


@dataclass
class UsageInfo:
    tokens_charged: int = 0
    new_balance: Optional[int] = None
    insufficient_balance: bool = False


@dataclass
class AgentAnswer:
    content: str
    confidence: float
    citations: list[Citation]
    should_handoff: bool
    model: str
    tokens_used: int = 0
    latency_ms: int = 0
    usage: UsageInfo = field(default_factory=UsageInfo)


def build_graph():
    graph = StateGraph(AgentState)
    graph.add_node("retrieve", retrieve_passages)
    graph.add_node("generate", generate_answer)
    graph.add_node("score", score_answer)

    graph.add_edge(START, "retrieve")
    # Nothing retrieved: skip the model call entirely.
    graph.add_conditional_edges(
        "retrieve",
        lambda state: "generate" if state.get("passages") else "score",
        {"generate": "generate", "score": "score"},
    )
    graph.add_edge("generate", "score")
    graph.add_edge("score", END)
    return graph.compile()


class QueryEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        deps: QueryDependencies,
        ledger: UsageLedger,
    ):
        if not 3 <= deps.top_k <= 8:
            raise ValueError("top_k must be between 3 and 8")
        self.session_factory = session_factory
        self.deps = deps
        self.ledger = ledger
        self.graph = build_graph()

    async def load_agent(self, tenant_id: uuid.UUID, agent_id: uuid.UUID) -> AgentConfig:
        """
        Raises:
            AgentNotFound: if the agent does not exist or belongs to another tenant.
            AgentInactive: if the agent is disabled.
        """
        async with self.session_factory() as session:
            agent = await session.scalar(
                select(Agent).where(Agent.id == agent_id, Agent.tenant_id == tenant_id)
            )
            if agent is None:
                raise AgentNotFound(str(agent_id))
            if not agent.is_active:
                raise AgentInactive(str(agent_id))
            api_key = await session.scalar(
                select(Tenant.llm_api_key).where(Tenant.id == tenant_id)
            )
            return AgentConfig(
                id=agent.id,
                tenant_id=agent.tenant_id,
                name=agent.name,
                model=agent.model,
                system_prompt=agent.system_prompt,
                temperature=agent.temperature,
                max_tokens=agent.max_tokens,
                confidence_threshold=agent.confidence_threshold,
                fallback_message=agent.fallback_message or DEFAULT_FALLBACK_MESSAGE,
                knowledge_base_ids=sorted(str(kb.id) for kb in agent.knowledge_bases),
                api_key=api_key,
            )

    async def answer(
        self, tenant_id: uuid.UUID, agent_id: uuid.UUID, question: str
    ) -> AgentAnswer:
        """
        Answers a question from the agent's knowledge bases.

        Raises:
            AgentNotFound, AgentInactive: if the agent cannot be used.
            EmbeddingProviderError, ModelProviderError: on provider failure;
                nothing is charged.
        """
        agent = await self.load_agent(tenant_id, agent_id)
        state = await self.graph.ainvoke(
            {"tenant_id": str(tenant_id), "question": question, "agent": agent},
            config={"configurable": {"deps": self.deps}},
        )

        completion = state.get("completion")
        usage = UsageInfo()
        tokens_used = 0
        if completion is not None:
            tokens_used = completion.input_tokens + completion.output_tokens
            try:
                result = await self.ledger.debit(
                    tenant_id,
                    completion.model,
                    completion.input_tokens,
                    completion.output_tokens,
                    agent_id=agent.id,
                    description=f"Answer by agent {agent.name}",
                )
                usage = UsageInfo(result.tokens_charged, result.new_balance)
            except InsufficientBalance as e:
                logger.warning(f"Answer delivered without charge: {e}")
                usage = UsageInfo(new_balance=e.balance, insufficient_balance=True)

        return AgentAnswer(
            content=state["content"],
            confidence=state["confidence"],
            citations=state["citations"],
            should_handoff=state["should_handoff"],
            model=agent.model,
            tokens_used=tokens_used,
            latency_ms=state.get("latency_ms", 0),
            usage=usage,
        )

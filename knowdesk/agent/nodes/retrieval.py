"""Node for retrieving relevant passages from the vector store."""

import asyncio

from langchain_core.runnables import RunnableConfig

from knowdesk.agent.state import AgentState, RetrievedPassage
from knowdesk.errors import VectorStoreError
from knowdesk.services.embeddings import embed_query
from knowdesk.utils.logging_config import logger


async def retrieve_passages(state: AgentState, config: RunnableConfig) -> dict:
    """
    Embeds the question and searches the tenant's namespace, restricted to
    the knowledge bases the agent may use.

    Args:
        state (AgentState): The current state of the agent.
        config (RunnableConfig): Carries the query dependencies.

    Returns:
        dict: The retrieved passages, best first.
    """
    logger.info("---NODE: RETRIEVE PASSAGES---")
    deps = config["configurable"]["deps"]
    agent = state["agent"]

    if not agent.knowledge_base_ids:
        logger.info(f"Agent {agent.id} has no knowledge bases in scope")
        return {"passages": []}

    vector = await embed_query(deps.embeddings, state["question"])
    try:
        matches = await asyncio.to_thread(
            deps.vector_store.query,
            str(state["tenant_id"]),
            vector,
            deps.top_k,
            agent.knowledge_base_ids,
            deps.embedding_model,
        )
    except VectorStoreError as e:
        logger.error(f"Retrieval failed, answering without passages: {e}")
        matches = []

    passages = [
        RetrievedPassage(
            document_id=str(m.metadata["document_id"]),
            chunk_index=int(m.metadata["chunk_index"]),
            content=m.metadata.get("content", ""),
            document_title=m.metadata.get("document_title", ""),
            page_number=m.metadata.get("page_number"),
            score=m.score,
        )
        for m in matches
        if m.score >= deps.min_score
    ]
    passages.sort(key=lambda p: (-p.score, p.document_id, p.chunk_index))

    logger.info(f"---RETRIEVED {len(passages)} PASSAGES---")
    return {"passages": passages[: deps.top_k]}

"""Node for scoring the answer and deciding on handoff."""

import re

from langchain_core.runnables import RunnableConfig

from knowdesk.agent.confidence import compute_confidence, detect_uncertainty, should_handoff
from knowdesk.agent.prompts import NO_INFORMATION_MESSAGE
from knowdesk.agent.state import AgentState, Citation
from knowdesk.utils.logging_config import logger

CITATION_MARK = re.compile(r"\[(\d+)\]")


def _citations(passages, content: str) -> list[Citation]:
    cited = {int(n) for n in CITATION_MARK.findall(content)}
    selected = [p for n, p in enumerate(passages, start=1) if n in cited] or passages
    return [
        Citation(
            document_id=p.document_id,
            document_title=p.document_title,
            chunk_index=p.chunk_index,
            page_number=p.page_number,
            score=p.score,
        )
        for p in selected
    ]


def score_answer(state: AgentState, config: RunnableConfig) -> dict:
    logger.info("---NODE: SCORE ANSWER---")
    deps = config["configurable"]["deps"]
    agent = state["agent"]
    passages = state.get("passages") or []

    if not passages:
        return {
            "content": f"{NO_INFORMATION_MESSAGE} {agent.fallback_message}",
            "confidence": 0.0,
            "should_handoff": True,
            "citations": [],
            "latency_ms": 0,
        }

    content = state.get("content", "")
    confidence = compute_confidence(
        passages[0].score,
        detect_uncertainty(content),
        floor=deps.similarity_floor,
        ceiling=deps.similarity_ceiling,
        uncertain_cap=deps.uncertain_cap,
    )
    handoff = should_handoff(confidence, agent.confidence_threshold)
    logger.info(
        f"Answer confidence {confidence:.2f} (threshold {agent.confidence_threshold}), "
        f"handoff={handoff}"
    )
    return {
        "confidence": confidence,
        "should_handoff": handoff,
        "citations": _citations(passages, content),
    }

"""Node for generating a grounded answer from the retrieved passages."""

import time

from langchain_core.runnables import RunnableConfig

from knowdesk.agent.prompts import build_system_prompt, build_user_prompt
from knowdesk.agent.state import AgentState
from knowdesk.utils.logging_config import logger


async def generate_answer(state: AgentState, config: RunnableConfig) -> dict:
    """
    Generate an answer to the user's question based on the retrieved passages.

    Args:
        state (AgentState): The current state of the agent.
        config (RunnableConfig): Carries the query dependencies.

    Returns:
        dict: The completion, its text and the model latency.
    """
    logger.info("---NODE: GENERATE ANSWER---")
    deps = config["configurable"]["deps"]
    agent = state["agent"]

    started = time.perf_counter()
    completion = await deps.llm.complete(
        tenant_id=str(state["tenant_id"]),
        model=agent.model,
        system_prompt=build_system_prompt(agent.system_prompt),
        prompt=build_user_prompt(state["passages"], state["question"]),
        temperature=agent.temperature,
        max_tokens=agent.max_tokens,
        api_key=agent.api_key,
    )
    latency_ms = int((time.perf_counter() - started) * 1000)

    return {
        "completion": completion,
        "content": completion.text.strip(),
        "latency_ms": latency_ms,
    }

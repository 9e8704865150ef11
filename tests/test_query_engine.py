import uuid
from dataclasses import replace

import pytest

from knowdesk.agent.constructor import QueryEngine
from knowdesk.agent.prompts import NO_ANSWER_SENTENCE, NO_INFORMATION_MESSAGE
from knowdesk.errors import AgentInactive, AgentNotFound, ModelProviderError
from knowdesk.models.agent import DEFAULT_FALLBACK_MESSAGE

OFFICE_HOURS = "Our office hours are 9am to 5pm, Monday to Friday."
SHIPPING = "Standard shipping takes three business days."


def index(processor, seed, tenant, kb, text, title="Handbook"):
    doc = seed.document(tenant, kb, title=title, raw_text=text)
    assert processor.process_document(doc.id).success
    return doc


@pytest.fixture
def setup(processor, seed):
    tenant = seed.tenant(balance=1000, llm_api_key="tenant-key")
    kb = seed.knowledge_base(tenant)
    doc = index(processor, seed, tenant, kb, OFFICE_HOURS)
    agent = seed.agent(tenant, knowledge_bases=(kb,))
    return tenant, kb, doc, agent


@pytest.mark.asyncio
async def test_grounded_answer_with_citation(query_engine, setup, llm):
    tenant, kb, doc, agent = setup

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert answer.content == f"{OFFICE_HOURS} [1]"
    assert answer.confidence == pytest.approx(0.954, abs=0.01)
    assert not answer.should_handoff
    [citation] = answer.citations
    assert citation.document_id == str(doc.id)
    assert citation.document_title == "Handbook"
    assert citation.chunk_index == 0
    assert llm.calls[0]["api_key"] == "tenant-key"
    assert llm.calls[0]["model"] == agent.model
    assert "Answer only from the numbered passages" in llm.calls[0]["system_prompt"]


@pytest.mark.asyncio
async def test_usage_is_charged(query_engine, setup, ledger):
    tenant, _, _, agent = setup

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    # 120 input and 40 output tokens of gemini-2.5-flash-lite round up to 1 unit.
    assert answer.tokens_used == 160
    assert answer.usage.tokens_charged == 1
    assert answer.usage.new_balance == 999
    assert await ledger.get_balance(tenant.id) == 999


@pytest.mark.asyncio
async def test_answer_is_delivered_without_balance(query_engine, processor, seed):
    tenant = seed.tenant(balance=0)
    kb = seed.knowledge_base(tenant)
    index(processor, seed, tenant, kb, OFFICE_HOURS)
    agent = seed.agent(tenant, knowledge_bases=(kb,))

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert answer.content.startswith(OFFICE_HOURS)
    assert answer.usage.insufficient_balance
    assert answer.usage.tokens_charged == 0
    assert answer.usage.new_balance == 0


@pytest.mark.asyncio
async def test_unrelated_question_hands_off_without_model_call(query_engine, setup, llm, ledger):
    tenant, _, _, agent = setup

    answer = await query_engine.answer(tenant.id, agent.id, "How do I reset my password?")

    assert answer.confidence == 0.0
    assert answer.should_handoff
    assert answer.citations == []
    assert answer.content == f"{NO_INFORMATION_MESSAGE} {DEFAULT_FALLBACK_MESSAGE}"
    assert llm.calls == []
    assert await ledger.get_balance(tenant.id) == 1000


@pytest.mark.asyncio
async def test_agent_without_knowledge_bases(query_engine, seed, llm, vector_store):
    tenant = seed.tenant()
    agent = seed.agent(tenant, fallback_message="Please email support@example.com.")

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert answer.content == f"{NO_INFORMATION_MESSAGE} Please email support@example.com."
    assert answer.confidence == 0.0
    assert answer.should_handoff
    assert llm.calls == []
    assert vector_store.queries == []


@pytest.mark.asyncio
async def test_retrieval_is_scoped_to_the_agent(query_engine, processor, seed, vector_store):
    tenant = seed.tenant()
    kb = seed.knowledge_base(tenant, "Shipping")
    private_kb = seed.knowledge_base(tenant, "Internal")
    index(processor, seed, tenant, kb, SHIPPING, title="Shipping")
    index(processor, seed, tenant, private_kb, OFFICE_HOURS, title="Internal")
    other = seed.tenant()
    other_kb = seed.knowledge_base(other)
    index(processor, seed, other, other_kb, OFFICE_HOURS)
    agent = seed.agent(tenant, knowledge_bases=(kb,))

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert answer.should_handoff
    assert answer.citations == []
    assert vector_store.queries == [
        {"namespace": str(tenant.id), "knowledge_base_ids": [str(kb.id)]}
    ]


@pytest.mark.asyncio
async def test_vector_store_failure_is_treated_as_no_passages(query_engine, setup, vector_store, llm):
    tenant, _, _, agent = setup
    vector_store.fail_queries = True

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert answer.confidence == 0.0
    assert answer.should_handoff
    assert llm.calls == []


@pytest.mark.asyncio
async def test_uncertain_model_answer_caps_confidence(query_engine, setup, llm):
    tenant, _, _, agent = setup
    llm.responder = lambda prompt: NO_ANSWER_SENTENCE

    answer = await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert answer.confidence == pytest.approx(0.2)
    assert answer.should_handoff
    # Nothing was cited, so every retrieved passage is listed.
    assert len(answer.citations) == 1


@pytest.mark.asyncio
async def test_model_failure_is_raised_and_not_charged(query_engine, setup, llm, ledger):
    tenant, _, _, agent = setup
    llm.error = ModelProviderError("Model gemini-2.5-flash-lite timed out after 30s")

    with pytest.raises(ModelProviderError):
        await query_engine.answer(tenant.id, agent.id, "What are the office hours?")

    assert await ledger.get_balance(tenant.id) == 1000


@pytest.mark.asyncio
async def test_unknown_and_inactive_agents(query_engine, seed):
    tenant = seed.tenant()
    other = seed.tenant()
    foreign_agent = seed.agent(other)
    inactive = seed.agent(tenant, is_active=False)

    with pytest.raises(AgentNotFound):
        await query_engine.answer(tenant.id, uuid.uuid4(), "Hello?")
    with pytest.raises(AgentNotFound):
        await query_engine.answer(tenant.id, foreign_agent.id, "Hello?")
    with pytest.raises(AgentInactive):
        await query_engine.answer(tenant.id, inactive.id, "Hello?")


@pytest.mark.asyncio
async def test_top_k_must_be_in_range(async_session_factory, query_deps, ledger):
    for top_k in (2, 9):
        with pytest.raises(ValueError):
            QueryEngine(async_session_factory, replace(query_deps, top_k=top_k), ledger)

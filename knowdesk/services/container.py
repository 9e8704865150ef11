"""
Builds the production service graph.

Each accessor creates its component once per process and reuses it.
"""

from datetime import timedelta
from functools import lru_cache

from knowdesk.agent.constructor import QueryDependencies, QueryEngine
from knowdesk.config.db import SessionLocal, SessionLocalSync
from knowdesk.services.billing import UsageLedger
from knowdesk.services.chunking import TextChunker
from knowdesk.services.client_cache import TenantClientCache
from knowdesk.services.conversations import ConversationService
from knowdesk.services.embeddings import get_embedding_model
from knowdesk.services.extraction import ContentExtractor
from knowdesk.services.ingestion import DocumentProcessor
from knowdesk.services.lifecycle import DocumentStateMachine
from knowdesk.services.llm import GeminiProvider
from knowdesk.services.recovery import RecoverySweep
from knowdesk.services.storage import SupabaseObjectStorage
from knowdesk.services.vector_store import PgVectorStore
from knowdesk.services.vision import VisionPageDescriber
from knowdesk.settings import settings


@lru_cache
def get_client_cache() -> TenantClientCache:
    return TenantClientCache(ttl_seconds=settings.CLIENT_CACHE_TTL_SECONDS)


@lru_cache
def get_llm_provider() -> GeminiProvider:
    return GeminiProvider(
        api_key=settings.GOOGLE_API_KEY,
        cache=get_client_cache(),
        timeout=settings.LLM_TIMEOUT_SECONDS,
        vision_model=settings.VISION_MODEL,
    )


@lru_cache
def get_vector_store() -> PgVectorStore:
    return PgVectorStore(SessionLocalSync)


@lru_cache
def get_storage() -> SupabaseObjectStorage:
    return SupabaseObjectStorage()


@lru_cache
def get_state_machine() -> DocumentStateMachine:
    return DocumentStateMachine(SessionLocalSync)


@lru_cache
def get_document_processor() -> DocumentProcessor:
    describer = None
    if settings.VISION_ENABLED:
        describer = VisionPageDescriber(
            get_llm_provider(),
            max_pages=settings.VISION_MAX_PAGES,
            dpi=settings.VISION_DPI,
        )
    return DocumentProcessor(
        SessionLocalSync,
        extractor=ContentExtractor(describer),
        chunker=TextChunker(settings.CHUNK_SIZE, settings.CHUNK_OVERLAP),
        embeddings=get_embedding_model(),
        vector_store=get_vector_store(),
        storage=get_storage(),
        embedding_model_name=settings.EMBEDDING_MODEL,
        batch_size=settings.EMBEDDING_BATCH_SIZE,
        state_machine=get_state_machine(),
    )


@lru_cache
def get_recovery_sweep() -> RecoverySweep:
    return RecoverySweep(
        SessionLocalSync,
        get_document_processor(),
        get_state_machine(),
        stuck_timeout=timedelta(minutes=settings.STUCK_JOB_TIMEOUT_MINUTES),
        max_age=timedelta(hours=settings.SWEEP_MAX_AGE_HOURS),
        batch_size=settings.SWEEP_BATCH_SIZE,
    )


@lru_cache
def get_usage_ledger() -> UsageLedger:
    return UsageLedger(SessionLocal)


@lru_cache
def get_query_engine() -> QueryEngine:
    deps = QueryDependencies(
        embeddings=get_embedding_model(),
        vector_store=get_vector_store(),
        llm=get_llm_provider(),
        embedding_model=settings.EMBEDDING_MODEL,
        top_k=settings.RETRIEVAL_TOP_K,
        min_score=settings.RETRIEVAL_MIN_SCORE,
        similarity_floor=settings.CONFIDENCE_SIMILARITY_FLOOR,
        similarity_ceiling=settings.CONFIDENCE_SIMILARITY_CEILING,
        uncertain_cap=settings.UNCERTAIN_CONFIDENCE_CAP,
    )
    return QueryEngine(SessionLocal, deps, get_usage_ledger())


@lru_cache
def get_conversation_service() -> ConversationService:
    return ConversationService(SessionLocal, get_query_engine())

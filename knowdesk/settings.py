from typing import Optional

from pydantic import Field, PostgresDsn, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: PostgresDsn = Field(..., alias="DATABASE_URL")
    DEBUG: bool = Field(default=False, alias="DEBUG")
    TEST_URL: Optional[PostgresDsn] = Field(
        default=None, alias="TEST_URL"
    )  # non root user, only used by the RLS test
    REDIS_URL: RedisDsn = Field(..., alias="REDIS_URL")
    SUPABASE_URL: str = Field(..., alias="SUPABASE_URL")
    SUPABASE_SERVICE_KEY: str = Field(..., alias="SUPABASE_SERVICE_KEY")
    SUPABASE_JWT_SECRET: str = Field(..., alias="SUPABASE_JWT_SECRET")
    KNOWLEDGE_BASE_BUCKET: str = Field(
        default="knowledge-base", alias="KNOWLEDGE_BASE_BUCKET"
    )
    GOOGLE_API_KEY: str = Field(..., alias="GOOGLE_API_KEY")
    CRON_SECRET: Optional[str] = Field(default=None, alias="CRON_SECRET")
    CHAT_SESSION_EXPIRE_HOURS: int = Field(
        default=24, alias="CHAT_SESSION_EXPIRE_HOURS"
    )
    MAX_FILE_SIZE: int = Field(default=20 * 1024 * 1024, alias="MAX_FILE_SIZE")

    # Embeddings
    EMBEDDING_MODEL: str = Field(
        default="BAAI/bge-small-en-v1.5", alias="EMBEDDING_MODEL"
    )
    EMBEDDING_BATCH_SIZE: int = Field(default=100, alias="EMBEDDING_BATCH_SIZE")

    # Chunking
    CHUNK_SIZE: int = Field(default=1000, alias="CHUNK_SIZE")
    CHUNK_OVERLAP: int = Field(default=150, alias="CHUNK_OVERLAP")

    # Vision
    VISION_ENABLED: bool = Field(default=True, alias="VISION_ENABLED")
    VISION_MODEL: str = Field(default="gemini-2.5-flash", alias="VISION_MODEL")
    VISION_MAX_PAGES: int = Field(default=20, alias="VISION_MAX_PAGES")
    VISION_DPI: int = Field(default=144, alias="VISION_DPI")

    # Agent / retrieval configuration
    DEFAULT_CHAT_MODEL: str = Field(
        default="gemini-2.5-flash-lite", alias="DEFAULT_CHAT_MODEL"
    )
    RETRIEVAL_TOP_K: int = Field(default=5, ge=3, le=8, alias="RETRIEVAL_TOP_K")
    RETRIEVAL_MIN_SCORE: float = Field(default=0.3, alias="RETRIEVAL_MIN_SCORE")
    CONFIDENCE_SIMILARITY_FLOOR: float = Field(
        default=0.35, alias="CONFIDENCE_SIMILARITY_FLOOR"
    )
    CONFIDENCE_SIMILARITY_CEILING: float = Field(
        default=0.8, alias="CONFIDENCE_SIMILARITY_CEILING"
    )
    UNCERTAIN_CONFIDENCE_CAP: float = Field(
        default=0.2, alias="UNCERTAIN_CONFIDENCE_CAP"
    )
    LLM_TIMEOUT_SECONDS: float = Field(default=30.0, alias="LLM_TIMEOUT_SECONDS")
    CLIENT_CACHE_TTL_SECONDS: int = Field(
        default=300, alias="CLIENT_CACHE_TTL_SECONDS"
    )

    # Recovery sweep
    STUCK_JOB_TIMEOUT_MINUTES: int = Field(
        default=5, alias="STUCK_JOB_TIMEOUT_MINUTES"
    )
    SWEEP_MAX_AGE_HOURS: int = Field(default=24, alias="SWEEP_MAX_AGE_HOURS")
    SWEEP_BATCH_SIZE: int = Field(default=3, ge=1, le=5, alias="SWEEP_BATCH_SIZE")
    SWEEP_INTERVAL_SECONDS: int = Field(default=300, alias="SWEEP_INTERVAL_SECONDS")

    # Billing
    PRICING_MARKUP_PERCENT: int = Field(default=100, alias="PRICING_MARKUP_PERCENT")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()

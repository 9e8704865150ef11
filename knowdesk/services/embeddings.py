"""
Singleton service for text embeddings to avoid memory overhead of multiple instances.
"""

import threading
from typing import Optional

from langchain_community.embeddings.fastembed import FastEmbedEmbeddings
from langchain_core.embeddings import Embeddings

from knowdesk.errors import EmbeddingProviderError
from knowdesk.settings import settings
from knowdesk.utils.logging_config import logger


class EmbeddingService:
    _model: Optional[FastEmbedEmbeddings] = None
    _lock: threading.Lock = threading.Lock()

    @classmethod
    def get_model(cls) -> FastEmbedEmbeddings:
        """
        Get the singleton instance of the embedding model.
        Initializes it if it doesn't exist.
        """
        if cls._model is None:
            with cls._lock:
                if cls._model is None:  # Double-check after acquiring lock
                    logger.info(
                        f"Initializing shared Embedding Model ({settings.EMBEDDING_MODEL})..."
                    )
                    try:
                        cls._model = FastEmbedEmbeddings(
                            model_name=settings.EMBEDDING_MODEL
                        )
                        logger.info("Embedding Model initialized successfully.")
                    except (RuntimeError, ValueError, OSError) as e:
                        logger.error(f"Failed to initialize Embedding Model: {e}")
                        raise EmbeddingProviderError(
                            f"Embedding model unavailable: {e}"
                        ) from e
        return cls._model


# Global convenience accessor
def get_embedding_model() -> FastEmbedEmbeddings:
    return EmbeddingService.get_model()


def embed_documents(
    model: Embeddings, texts: list[str], batch_size: int = 100
) -> list[list[float]]:
    """Embeds texts in batches, preserving order."""
    vectors: list[list[float]] = []
    for start in range(0, len(texts), batch_size):
        batch = texts[start : start + batch_size]
        try:
            result = model.embed_documents(batch)
        except (RuntimeError, ValueError, OSError) as e:
            raise EmbeddingProviderError(f"Embedding batch failed: {e}") from e
        if len(result) != len(batch):
            raise EmbeddingProviderError(
                f"Embedding provider returned {len(result)} vectors for {len(batch)} texts"
            )
        vectors.extend(list(map(list, result)))
    return vectors


async def embed_query(model: Embeddings, text: str) -> list[float]:
    try:
        return list(await model.aembed_query(text))
    except (RuntimeError, ValueError, OSError) as e:
        raise EmbeddingProviderError(f"Query embedding failed: {e}") from e

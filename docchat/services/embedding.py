"""OpenAI embedding generation service."""

import hashlib
import logging
from typing import Dict, List, Optional

from openai import AsyncOpenAI

from docchat.core.config import Settings
from docchat.core.exceptions import CacheError, EmbeddingError
from docchat.services.cache import CacheService
from docchat.services.llm import classify_openai_error

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[AsyncOpenAI] = None,
        cache: Optional[CacheService] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            settings: Application settings.
            client: Pre-built OpenAI client, mainly for tests.
            cache: Optional embedding cache.
        """
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=settings.llm_max_retries,
        )
        self.cache = cache
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions

    def _get_cache_key(self, text: str) -> str:
        text_hash = hashlib.md5(text.encode()).hexdigest()
        return f"embedding:{self.model}:{self.dimensions}:{text_hash}"

    async def _request_embeddings(self, texts: List[str]) -> List[List[float]]:
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=texts,
                dimensions=self.dimensions,
            )
        except Exception as e:
            raise EmbeddingError(
                f"Failed to generate embeddings: {str(e)}",
                kind=classify_openai_error(e),
            ) from e

        embeddings = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(embeddings)}")
        return embeddings

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Cached vectors are reused; only the misses are sent to the API.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, in input order.

        Raises:
            EmbeddingError: If embedding generation fails.
        """
        if not texts:
            return []

        keys = [self._get_cache_key(text) for text in texts]
        results: List[Optional[List[float]]] = [None] * len(texts)
        if self.cache:
            results = await self.cache.get_many(keys)

        missing = [idx for idx, vector in enumerate(results) if not vector]
        if missing:
            fresh = await self._request_embeddings([texts[idx] for idx in missing])
            for idx, vector in zip(missing, fresh):
                results[idx] = vector
            await self._store({keys[idx]: results[idx] for idx in missing})

        return results

    async def _store(self, vectors: Dict[str, List[float]]) -> None:
        if not self.cache:
            return
        try:
            await self.cache.set_many(vectors)
        except CacheError as e:
            logger.warning(f"Failed to cache {len(vectors)} embeddings: {str(e)}")

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.
        """
        embeddings = await self.generate_embeddings([text])
        return embeddings[0]

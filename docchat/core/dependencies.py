"""Dependency injection for services."""

import logging
from typing import Optional

from docchat.core.config import Settings, get_settings
from docchat.services.cache import CacheService
from docchat.services.chat_engine import ChatEngine
from docchat.services.chat_service import ChatService
from docchat.services.chunking import ChunkingService
from docchat.services.database import DatabaseService
from docchat.services.document_pipeline import DocumentPipeline
from docchat.services.embedding import EmbeddingService
from docchat.services.extraction import ContentExtractor
from docchat.services.fetcher import PageFetcher
from docchat.services.llm import LLMService
from docchat.services.query_enhancer import QueryEnhancer
from docchat.services.storage import FileStorage
from docchat.services.summarizer import Summarizer
from docchat.services.vector_db import VectorDBService
from docchat.services.youtube import YouTubeService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Build every service; no connection is opened here.

        Args:
            settings: Application settings, defaulting to the environment.
        """
        self.settings = settings or get_settings()
        self.cache_service = CacheService(self.settings)
        self.database = DatabaseService(self.settings)
        self.storage = FileStorage(self.settings.upload_dir)
        self.fetcher = PageFetcher(self.settings)
        self.vector_db = VectorDBService(self.settings)
        self.embedding_service = EmbeddingService(self.settings, cache=self.cache_service)
        self.llm_service = LLMService(self.settings)
        self.chunking_service = ChunkingService(self.settings)
        self.summarizer = Summarizer(self.settings, self.llm_service)
        self.query_enhancer = QueryEnhancer(self.settings, self.llm_service)
        self.extractor = ContentExtractor(
            self.settings, self.storage, self.fetcher, YouTubeService(self.fetcher))
        self.pipeline = DocumentPipeline(
            self.settings,
            self.database,
            self.extractor,
            self.summarizer,
            self.chunking_service,
            self.embedding_service,
            self.vector_db,
            self.storage,
        )
        self.chat_engine = ChatEngine(
            self.settings,
            self.vector_db,
            self.embedding_service,
            self.llm_service,
            self.query_enhancer,
        )
        self.chat_service = ChatService(
            self.settings, self.database, self.database, self.chat_engine)

    async def initialize(self) -> None:
        """Initialize all services."""
        await self.database.connect()
        await self.database.create_schema()
        await self.cache_service.connect()
        await self.vector_db.ensure_ready()
        logger.info("Services initialized")

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.pipeline.wait_for_pending()
        await self.fetcher.close()
        await self.database.disconnect()
        await self.vector_db.close()
        await self.cache_service.disconnect()

"""Document ingestion pipeline: extract, summarize, chunk, index, persist."""

import asyncio
import logging
import time
from typing import List, Optional, Set

from docchat.core.config import Settings
from docchat.core.exceptions import IndexingError, IndexUnavailableError, VectorDBError
from docchat.models.document import (
    MAX_TITLE_CHARS,
    Chunk,
    Document,
    DocumentStatus,
    DocumentType,
    IngestionSource,
)
from docchat.models.vector import VectorPoint
from docchat.monitoring.metrics import (
    chunks_dropped_total,
    chunks_indexed_total,
    ingestion_duration_seconds,
    ingestions_completed_total,
    ingestions_failed_total,
    ingestions_started_total,
)
from docchat.services.chunking import ChunkingService
from docchat.services.database import DocumentStore
from docchat.services.embedding import EmbeddingService
from docchat.services.extraction import ContentExtractor
from docchat.services.retry import retry_with_backoff
from docchat.services.storage import FileStorage
from docchat.services.summarizer import Summarizer
from docchat.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class DocumentPipeline:
    """Turns ingestion sources into indexed documents."""

    def __init__(
        self,
        settings: Settings,
        store: DocumentStore,
        extractor: ContentExtractor,
        summarizer: Summarizer,
        chunking_service: ChunkingService,
        embedding_service: EmbeddingService,
        vector_db: VectorDBService,
        storage: FileStorage,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            settings: Application settings.
            store: Document record store.
            extractor: Content extractor.
            summarizer: Summary generator.
            chunking_service: Document chunking service.
            embedding_service: Embedding generation service.
            vector_db: Vector database service.
            storage: Upload storage, used for cleanup.
        """
        self.settings = settings
        self.store = store
        self.extractor = extractor
        self.summarizer = summarizer
        self.chunking_service = chunking_service
        self.embedding_service = embedding_service
        self.vector_db = vector_db
        self.storage = storage
        self.batch_size = settings.embedding_batch_size
        self.batch_delay = settings.embedding_batch_delay_seconds
        self._tasks: Set[asyncio.Task] = set()

    async def ingest(self, source: IngestionSource, owner_id: str) -> Document:
        """
        Ingest a source and wait for the outcome.

        Processing runs in a tracked task, so cancelling the caller does not
        stop it; the document still ends completed or failed.

        Returns:
            The document in its terminal state, completed or failed.
        """
        document = await self._create_placeholder(source, owner_id)
        return await asyncio.shield(self._spawn(document, source))

    async def start_ingestion(self, source: IngestionSource, owner_id: str) -> Document:
        """
        Persist the placeholder and process the source in the background.

        Returns:
            The placeholder document, still in processing status.
        """
        document = await self._create_placeholder(source, owner_id)
        self._spawn(document, source)
        return document

    def _spawn(self, document: Document, source: IngestionSource) -> "asyncio.Task[Document]":
        task = asyncio.create_task(self._process(document, source))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_for_pending(self) -> None:
        """Wait for every background ingestion to finish."""
        while self._tasks:
            tasks = list(self._tasks)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            self._tasks.difference_update(tasks)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Background ingestion crashed: {str(result)}")

    async def _create_placeholder(self, source: IngestionSource, owner_id: str) -> Document:
        document = Document(
            owner_id=owner_id,
            title=source.placeholder_title(),
            type=source.kind,
            source=source.placeholder_source(),
            metadata=source.placeholder_metadata(),
            status=DocumentStatus.PROCESSING,
        )
        try:
            return await self.store.create_document(document)
        except Exception:
            await self._cleanup(source)
            raise

    async def _process(self, document: Document, source: IngestionSource) -> Document:
        ingestions_started_total.labels(type=document.type.value).inc()
        start_time = time.perf_counter()
        try:
            try:
                extracted = await self.extractor.extract(source)
            except Exception as e:
                logger.error(f"Extraction failed for document {document.id}: {str(e)}")
                return await self._fail(document, str(e) or type(e).__name__)

            try:
                summary = await self.summarizer.summarize(extracted.text)
                chunks = self.chunking_service.chunk_document(
                    extracted.text, document.id, extracted.metadata)
                indexed = await self.index_chunks(document.id, chunks)
            except Exception as e:
                logger.error(f"Indexing failed for document {document.id}: {str(e)}")
                return await self._fail(document, str(e) or type(e).__name__)

            completed = await self.store.update_document(
                document.id,
                {
                    "title": extracted.title.strip()[:MAX_TITLE_CHARS] or document.title,
                    "content": extracted.text,
                    "summary": summary,
                    "metadata": extracted.metadata,
                    "status": DocumentStatus.COMPLETED,
                    "chunks": indexed,
                },
            )
            ingestions_completed_total.labels(type=document.type.value).inc()
            logger.info(
                f"Ingested document {document.id}: {len(indexed)}/{len(chunks)} chunks indexed "
                f"in {time.perf_counter() - start_time:.2f}s"
            )
            return completed or document
        finally:
            ingestion_duration_seconds.observe(time.perf_counter() - start_time)
            await self._cleanup(source)

    async def _fail(self, document: Document, error: str) -> Document:
        ingestions_failed_total.labels(type=document.type.value).inc()
        failed = await self.store.update_document(
            document.id, {"status": DocumentStatus.FAILED, "error": error})
        return failed or document

    async def _cleanup(self, source: IngestionSource) -> None:
        if source.kind == DocumentType.FILE and source.path:
            await self.storage.delete(source.path)

    async def _index_batch(self, document_id: str, batch: List[Chunk]) -> None:
        vectors = await self.embedding_service.generate_embeddings([c.content for c in batch])
        await self.vector_db.upsert([
            VectorPoint.from_chunk(chunk, document_id, vector)
            for chunk, vector in zip(batch, vectors)
        ])

    async def index_chunks(self, document_id: str, chunks: List[Chunk]) -> List[Chunk]:
        """
        Embed and upsert chunks in batches.

        A failed batch is retried chunk by chunk; chunks that still fail are
        dropped with a warning.

        Returns:
            The chunks that made it into the index.

        Raises:
            IndexUnavailableError: If the vector database cannot be reached.
            IndexingError: If not a single chunk could be indexed.
        """
        indexed: List[Chunk] = []
        for start in range(0, len(chunks), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_delay)
            batch = chunks[start:start + self.batch_size]
            try:
                await self._index_batch(document_id, batch)
                indexed.extend(batch)
                continue
            except IndexUnavailableError:
                raise
            except Exception as e:
                logger.warning(
                    f"Batch starting at chunk {start} failed for document {document_id}, "
                    f"retrying chunks individually: {str(e)}"
                )

            for chunk in batch:
                try:
                    await retry_with_backoff(
                        lambda chunk=chunk: self._index_batch(document_id, [chunk]),
                        self.settings,
                        max_retries=self.settings.max_retries,
                        give_up_on=(IndexUnavailableError,),
                    )
                    indexed.append(chunk)
                except IndexUnavailableError:
                    raise
                except Exception as e:
                    chunks_dropped_total.inc()
                    logger.warning(
                        f"Dropping chunk {chunk.metadata.index} of document {document_id}: {str(e)}")

        chunks_indexed_total.inc(len(indexed))
        if chunks and not indexed:
            raise IndexingError("No chunks could be indexed")
        return indexed

    async def get_document(self, document_id: str, owner_id: str) -> Optional[Document]:
        return await self.store.get_document(document_id, owner_id)

    async def list_documents(
        self, owner_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Document]:
        return await self.store.find_documents(owner_id, status)

    async def delete_document(self, document_id: str, owner_id: str) -> bool:
        """
        Delete a document together with its vectors and stored upload.

        Vector and file removal are best-effort; the record is removed
        regardless.

        Returns:
            False if the owner has no such document.
        """
        document = await self.store.get_document(document_id, owner_id)
        if not document:
            return False

        try:
            await self.vector_db.delete_by_document_id(document_id)
        except VectorDBError as e:
            logger.error(f"Failed to delete vectors for document {document_id}: {str(e)}")

        if document.type == DocumentType.FILE:
            await self.storage.delete(document.source)

        await self.store.delete_document(document_id)
        logger.info(f"Deleted document {document_id}")
        return True

"""Qdrant vector database service."""

import asyncio
import logging
from typing import Any, Iterable, List, Optional, Sequence

import httpx
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    NearestQuery,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from docchat.core.config import Settings
from docchat.core.exceptions import ErrorKind, IndexUnavailableError, VectorDBError
from docchat.models.vector import DOCUMENT_ID_FIELD, ScoredChunk, VectorPoint
from docchat.monitoring.metrics import vector_search_fallbacks_total

logger = logging.getLogger(__name__)

MISSING_INDEX_MARKER = "Index required"


def is_missing_index_error(error: BaseException) -> bool:
    """
    Tell whether Qdrant rejected a filtered request for lack of a payload index.

    Qdrant reports this as a 400 response whose body contains
    ``"Index required but not found for ..."``. The REST client exposes no
    structured code for it, so the body text is the only signal.

    Args:
        error: Exception raised by the Qdrant client.

    Returns:
        True if the request can be retried without the server-side filter.
    """
    if not isinstance(error, UnexpectedResponse):
        return False
    content = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return MISSING_INDEX_MARKER in (content or "")


def _is_conflict(error: BaseException) -> bool:
    return isinstance(error, UnexpectedResponse) and error.status_code == 409


class VectorDBService:
    """Service for interacting with Qdrant vector database."""

    def __init__(self, settings: Settings, client: Optional[AsyncQdrantClient] = None) -> None:
        """
        Initialize the vector database service.

        No network call happens here; ``ensure_ready`` performs the setup.

        Args:
            settings: Application settings.
            client: Pre-built Qdrant client, e.g. an in-memory one for tests.
        """
        self.settings = settings
        self.client = client
        self.collection_name = settings.qdrant_collection_name
        self.dimensions = settings.embedding_dimensions
        self.fallback_multiplier = settings.search_fallback_multiplier
        self.fallback_max_candidates = settings.search_fallback_max_candidates
        self.scroll_batch_size = settings.scroll_batch_size
        self._ready: Optional[asyncio.Future] = None

    async def ensure_ready(self) -> None:
        """
        Create the collection and the documentId payload index if missing.

        Concurrent callers share a single initialization; a failed
        initialization is forgotten so the next call tries again.
        """
        if self._ready is None:
            self._ready = asyncio.ensure_future(self._initialize())
        ready = self._ready
        try:
            await asyncio.shield(ready)
        except Exception:
            if self._ready is ready and ready.done():
                self._ready = None
            raise

    async def _initialize(self) -> None:
        if self.client is None:
            self.client = AsyncQdrantClient(
                url=self.settings.qdrant_url,
                api_key=self.settings.qdrant_api_key,
                timeout=int(self.settings.qdrant_timeout_seconds),
            )
        try:
            if not await self.client.collection_exists(self.collection_name):
                await self._create_collection()
            else:
                logger.info(f"Using existing Qdrant collection: {self.collection_name}")
            await self._ensure_document_index()
        except Exception as e:
            raise self._translate(e, "initialize the collection") from e
        logger.info("Vector service initialized successfully")

    async def _create_collection(self) -> None:
        try:
            await self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
            logger.info(f"Created Qdrant collection: {self.collection_name}")
        except UnexpectedResponse as e:
            if not _is_conflict(e):
                raise
            logger.info(f"Collection {self.collection_name} was created concurrently")

    async def _ensure_document_index(self) -> None:
        """Create the keyword index on documentId; a failure leaves the fallbacks in charge."""
        try:
            info = await self.client.get_collection(self.collection_name)
            if DOCUMENT_ID_FIELD in (info.payload_schema or {}):
                return
            await self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=DOCUMENT_ID_FIELD,
                field_schema=PayloadSchemaType.KEYWORD,
                wait=True,
            )
            logger.info(
                f"Created index for {DOCUMENT_ID_FIELD} field in collection: {self.collection_name}")
        except UnexpectedResponse as e:
            logger.error(f"Failed to create {DOCUMENT_ID_FIELD} index: {str(e)}")

    async def close(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()

    def _translate(self, error: Exception, action: str) -> VectorDBError:
        """Wrap a client exception into the vector error taxonomy."""
        if isinstance(error, VectorDBError):
            return error
        if isinstance(error, ResponseHandlingException):
            source = getattr(error, "source", None)
            kind = ErrorKind.TIMEOUT if isinstance(source, httpx.TimeoutException) else ErrorKind.NETWORK
            return IndexUnavailableError(
                f"Qdrant unreachable while trying to {action}: {str(source or error)}", kind=kind)
        if isinstance(error, httpx.TimeoutException):
            return IndexUnavailableError(
                f"Qdrant timed out while trying to {action}: {str(error)}", kind=ErrorKind.TIMEOUT)
        if isinstance(error, (httpx.TransportError, ConnectionError)):
            return IndexUnavailableError(
                f"Qdrant unreachable while trying to {action}: {str(error)}")
        return VectorDBError(f"Failed to {action}: {str(error)}")

    @staticmethod
    def _document_filter(document_ids: Sequence[str]) -> Filter:
        if len(document_ids) == 1:
            match: Any = MatchValue(value=document_ids[0])
        else:
            match = MatchAny(any=list(document_ids))
        return Filter(must=[FieldCondition(key=DOCUMENT_ID_FIELD, match=match)])

    async def upsert(self, points: Sequence[VectorPoint]) -> None:
        """
        Upsert points, waiting until Qdrant acknowledges the write.

        Args:
            points: Points keyed by chunk id; existing ids are replaced.
        """
        if not points:
            return
        await self.ensure_ready()

        try:
            await self.client.upsert(
                collection_name=self.collection_name,
                points=[
                    PointStruct(id=point.id, vector=point.vector, payload=point.payload)
                    for point in points
                ],
                wait=True,
            )
        except Exception as e:
            raise self._translate(e, "upsert points") from e

    async def search(
        self,
        query_vector: List[float],
        top_k: int,
        document_ids: Optional[Sequence[str]] = None,
    ) -> List[ScoredChunk]:
        """
        Search for similar chunks.

        Args:
            query_vector: Query embedding vector.
            top_k: Number of results to return.
            document_ids: Restrict results to these documents. ``None``
                searches everything; an empty sequence matches nothing.

        Returns:
            Matching chunks ordered by descending score.
        """
        if document_ids is not None and len(document_ids) == 0:
            return []
        await self.ensure_ready()

        query_filter = self._document_filter(document_ids) if document_ids else None
        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=NearestQuery(nearest=list(query_vector)),
                limit=top_k,
                query_filter=query_filter,
                with_payload=True,
            )
            points = response.points
        except Exception as e:
            if query_filter is None or not is_missing_index_error(e):
                raise self._translate(e, "search") from e
            logger.warning(
                f"{DOCUMENT_ID_FIELD} index missing, filtering search results client-side")
            vector_search_fallbacks_total.inc()
            points = await self._search_without_index(query_vector, top_k, set(document_ids))

        matches = [self._to_scored_chunk(point) for point in points]
        return sorted(matches, key=lambda m: m.score, reverse=True)

    async def _search_without_index(
        self, query_vector: List[float], top_k: int, wanted: set
    ) -> List[Any]:
        """
        Unfiltered search plus client-side filtering.

        The candidate window grows until it holds ``top_k`` wanted points or
        the collection is exhausted, so the outcome matches an indexed search.
        """
        limit = max(top_k * self.fallback_multiplier, top_k)
        while True:
            try:
                response = await self.client.query_points(
                    collection_name=self.collection_name,
                    query=NearestQuery(nearest=list(query_vector)),
                    limit=limit,
                    with_payload=True,
                )
            except Exception as e:
                raise self._translate(e, "search without filter") from e

            matches = [
                point for point in response.points
                if (point.payload or {}).get(DOCUMENT_ID_FIELD) in wanted
            ]
            exhausted = len(response.points) < limit
            if len(matches) >= top_k or exhausted or limit >= self.fallback_max_candidates:
                return matches[:top_k]
            limit = min(limit * 2, self.fallback_max_candidates)

    @staticmethod
    def _to_scored_chunk(point: Any) -> ScoredChunk:
        payload = dict(point.payload or {})
        content = payload.pop("content", "")
        document_id = payload.pop(DOCUMENT_ID_FIELD, "")
        return ScoredChunk(
            id=str(point.id),
            content=content,
            score=point.score,
            document_id=str(document_id),
            metadata=payload,
        )

    async def delete_by_ids(self, ids: Iterable[str]) -> None:
        """
        Delete points by id.

        Args:
            ids: Point ids; unknown ids are ignored.
        """
        ids = list(ids)
        if not ids:
            return
        await self.ensure_ready()

        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=ids),
                wait=True,
            )
        except Exception as e:
            raise self._translate(e, "delete points") from e
        logger.info(f"Deleted {len(ids)} chunks from vector database")

    async def delete_by_document_id(self, document_id: str) -> None:
        """
        Delete all chunks for a document. Deleting twice is a no-op.

        Args:
            document_id: ID of the document whose chunks are removed.
        """
        await self.ensure_ready()

        try:
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(filter=self._document_filter([document_id])),
                wait=True,
            )
            logger.info(f"Deleted all chunks for document {document_id}")
            return
        except Exception as e:
            if not is_missing_index_error(e):
                raise self._translate(e, f"delete chunks for document {document_id}") from e

        logger.warning(f"{DOCUMENT_ID_FIELD} index missing, using scroll and delete approach")
        point_ids = await self.point_ids_for_document(document_id)
        if not point_ids:
            logger.info(f"No chunks found for document {document_id}")
            return
        await self.delete_by_ids(point_ids)

    async def point_ids_for_document(self, document_id: str) -> List[str]:
        """
        Enumerate the ids of a document's points by scrolling the collection.

        Works without the payload index, at the cost of a full scan.
        """
        await self.ensure_ready()

        point_ids: List[str] = []
        offset = None
        while True:
            try:
                records, offset = await self.client.scroll(
                    collection_name=self.collection_name,
                    limit=self.scroll_batch_size,
                    offset=offset,
                    with_payload=[DOCUMENT_ID_FIELD],
                    with_vectors=False,
                )
            except Exception as e:
                raise self._translate(e, "scroll points") from e

            point_ids.extend(
                str(record.id) for record in records
                if (record.payload or {}).get(DOCUMENT_ID_FIELD) == document_id
            )
            if offset is None:
                return point_ids

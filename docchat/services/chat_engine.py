"""Retrieval-augmented answering over indexed documents."""

import asyncio
import logging
import re
import time
from typing import Dict, List, Optional, Sequence

from docchat.core.config import Settings
from docchat.core.exceptions import ChatError, ErrorKind, ServiceError
from docchat.models.chat import ChatAnswer, Message, MessageRole, RetrievedChunkPreview
from docchat.models.vector import ScoredChunk
from docchat.monitoring.metrics import query_counter, query_errors_total, query_latency_seconds
from docchat.services.embedding import EmbeddingService
from docchat.services.llm import LLMService, classify_openai_error
from docchat.services.query_enhancer import QueryEnhancer
from docchat.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)

EMPTY_RETRIEVAL_ANSWER = (
    "I couldn't find any relevant information in the uploaded documents to answer your question. "
    "Please make sure your query is related to the content you've shared, or try rephrasing your question."
)

ANSWER_SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based on the provided context from documents.

Guidelines:
1. Answer questions using ONLY the information provided in the context
2. If the context doesn't contain enough information to answer fully, acknowledge this limitation
3. Be specific and cite relevant parts of the context when possible
4. Provide comprehensive answers when the information is available
5. If asked about something not in the context, politely explain that you can only answer based on the provided documents
6. Maintain a helpful and conversational tone
7. Structure your response clearly with relevant details

Context from documents:
"""

TITLE_SYSTEM_PROMPT = (
    "Generate a concise, descriptive title (max 50 characters) for a chat conversation "
    "based on the first user message. The title should capture the main topic or question."
)
TITLE_MAX_CHARS = 50


class ChatEngine:
    """Answers questions from retrieved document chunks."""

    def __init__(
        self,
        settings: Settings,
        vector_db: VectorDBService,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        query_enhancer: QueryEnhancer,
    ) -> None:
        """
        Initialize the chat engine.

        Args:
            settings: Application settings.
            vector_db: Vector database service.
            embedding_service: Embedding generation service.
            llm_service: LLM service.
            query_enhancer: Query rewriting service.
        """
        self.vector_db = vector_db
        self.embedding_service = embedding_service
        self.llm_service = llm_service
        self.query_enhancer = query_enhancer
        self.top_k = settings.top_k
        self.min_relevance_score = settings.min_relevance_score
        self.max_query_chars = settings.max_query_chars
        self.prompt_history_messages = settings.prompt_history_messages
        self.preview_chars = settings.chunk_preview_chars
        self.timeout = settings.chat_timeout_seconds
        self.enhancer_temperature = settings.enhancer_temperature

    async def answer(
        self,
        query: str,
        document_ids: Optional[Sequence[str]] = None,
        history: Sequence[Message] = (),
    ) -> ChatAnswer:
        """
        Answer a question from the indexed documents.

        Args:
            query: The user's question.
            document_ids: Documents to search. ``None`` searches the whole
                index; an empty sequence yields the no-information answer.
            history: Earlier messages of the conversation, oldest first.

        Returns:
            The answer with its sources and retrieved chunk previews.

        Raises:
            ChatError: With ``kind`` set to validation, timeout, auth,
                rate_limited, network or unknown.
        """
        if not query or not query.strip():
            raise ChatError("Query is required and must be a non-empty string", kind=ErrorKind.VALIDATION)
        if len(query) > self.max_query_chars:
            query = query[:self.max_query_chars] + "..."

        query_counter.inc()
        start_time = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self._answer(query, document_ids, list(history)), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            query_errors_total.labels(kind=ErrorKind.TIMEOUT.value).inc()
            logger.error(f"Chat answer timed out after {self.timeout}s")
            raise ChatError(
                f"Request timeout after {self.timeout:.0f}s - please try again",
                kind=ErrorKind.TIMEOUT) from e
        except ServiceError as e:
            query_errors_total.labels(kind=e.kind.value).inc()
            logger.error(f"Error in chat engine: {str(e)}")
            raise ChatError(f"Failed to generate response: {str(e)}", kind=e.kind) from e
        except Exception as e:
            kind = classify_openai_error(e)
            query_errors_total.labels(kind=kind.value).inc()
            logger.error(f"Unexpected error in chat engine: {str(e)}")
            raise ChatError(f"Failed to generate response: {str(e)}", kind=kind) from e
        finally:
            query_latency_seconds.observe(time.perf_counter() - start_time)

    async def _answer(
        self,
        query: str,
        document_ids: Optional[Sequence[str]],
        history: List[Message],
    ) -> ChatAnswer:
        enhanced_query = await self.query_enhancer.enhance(query, history)

        if document_ids is not None and len(document_ids) == 0:
            chunks: List[ScoredChunk] = []
        else:
            query_vector = await self.embedding_service.generate_embedding(enhanced_query)
            chunks = await self.vector_db.search(query_vector, self.top_k, document_ids)

        if not chunks:
            logger.info("No chunks retrieved, returning empty-retrieval answer")
            return ChatAnswer(content=EMPTY_RETRIEVAL_ANSWER, enhanced_query=enhanced_query)

        relevant = [chunk for chunk in chunks if chunk.score > self.min_relevance_score]
        content = await self.llm_service.complete(self.build_messages(query, relevant, history))

        return ChatAnswer(
            content=content,
            sources=list(dict.fromkeys(chunk.document_id for chunk in chunks)),
            retrieved_chunks=[self._preview(chunk) for chunk in chunks],
            enhanced_query=enhanced_query,
        )

    def build_messages(
        self, query: str, chunks: Sequence[ScoredChunk], history: Sequence[Message]
    ) -> List[Dict[str, str]]:
        """Assemble the system prompt with numbered sources and the dialogue turn."""
        context = "\n\n".join(
            f"[Source {idx}]: {chunk.content}" for idx, chunk in enumerate(chunks, start=1))

        conversation = ""
        recent = list(history)[-self.prompt_history_messages:] if self.prompt_history_messages > 0 else []
        if recent:
            lines = "\n".join(
                f"{'Human' if m.role == MessageRole.USER else 'Assistant'}: {m.content}" for m in recent)
            conversation = f"\n\nRecent conversation:\n{lines}\n"

        return [
            {"role": "system", "content": ANSWER_SYSTEM_PROMPT + context},
            {
                "role": "user",
                "content": f"{conversation}Human: {query}\n\n"
                "Please answer this question based on the provided context.",
            },
        ]

    def _preview(self, chunk: ScoredChunk) -> RetrievedChunkPreview:
        content = chunk.content
        if len(content) > self.preview_chars:
            content = content[:self.preview_chars] + "..."
        return RetrievedChunkPreview(
            document_id=chunk.document_id,
            chunk_id=chunk.id,
            content=content,
            score=chunk.score,
        )

    async def generate_title(self, first_message: str) -> str:
        """
        Generate a short chat title from the opening message.

        Falls back to the message's first characters if the model call fails.
        """
        fallback = first_message[:TITLE_MAX_CHARS].strip() + "..."
        try:
            title = await self.llm_service.complete(
                [
                    {"role": "system", "content": TITLE_SYSTEM_PROMPT},
                    {"role": "user", "content": f'First message: "{first_message}"\n\nTitle:'},
                ],
                temperature=self.enhancer_temperature,
                max_tokens=30,
            )
        except Exception as e:
            logger.error(f"Error generating chat title: {str(e)}")
            return fallback

        title = re.sub(r"^[\"']+|[\"']+$", "", title.strip()).strip()
        return title[:TITLE_MAX_CHARS] or fallback

"""End-to-end chat turns over documents indexed in an in-process Qdrant."""

from __future__ import annotations

from typing import Dict, List

import pytest

from docchat.models.document import Document, DocumentStatus, DocumentType
from docchat.models.vector import VectorPoint
from docchat.services.chat_engine import EMPTY_RETRIEVAL_ANSWER, ChatEngine
from docchat.services.chat_service import ChatService
from docchat.services.chunking import ChunkingService
from docchat.services.query_enhancer import QueryEnhancer
from docchat.services.vector_db import VectorDBService

from conftest import FakeEmbeddingService, ScriptedLLM

OWNER = "owner-1"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _llm() -> ScriptedLLM:
    """Keeps queries as-is and answers with the number of sources it was given."""

    def reply(messages: List[Dict[str, str]]) -> str:
        if "query enhancement" in messages[0]["content"]:
            return ""
        return f"Answer from {messages[0]['content'].count('[Source ')} sources."

    return ScriptedLLM(reply)


async def _index(
    settings,
    document_store,
    vector_db: VectorDBService,
    embeddings: FakeEmbeddingService,
    document_id: str,
    text: str,
    status: DocumentStatus,
) -> None:
    await document_store.create_document(Document(
        id=document_id, owner_id=OWNER, title=document_id, type=DocumentType.TEXT,
        source="direct_input", status=status, content=text))
    chunks = ChunkingService(settings).chunk_document(text, document_id)
    vectors = await embeddings.generate_embeddings([c.content for c in chunks])
    await vector_db.upsert([
        VectorPoint.from_chunk(chunk, document_id, vector) for chunk, vector in zip(chunks, vectors)
    ])


def _service(settings, document_store, chat_store, vector_db, embeddings, llm) -> ChatService:
    engine = ChatEngine(settings, vector_db, embeddings, llm, QueryEnhancer(settings, llm))
    return ChatService(settings, chat_store, document_store, engine)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestChatFlow:
    """Retrieval stays inside the completed part of the requested scope."""

    @pytest.mark.asyncio
    async def test_processing_documents_are_never_retrieved(
        self, settings, document_store, chat_store, vector_db, fake_embeddings
    ) -> None:
        text = "Qdrant collections store vectors and payloads for semantic search."
        await _index(settings, document_store, vector_db, fake_embeddings, "doc-a", text, DocumentStatus.COMPLETED)
        await _index(settings, document_store, vector_db, fake_embeddings, "doc-b", text, DocumentStatus.PROCESSING)
        service = _service(settings, document_store, chat_store, vector_db, fake_embeddings, _llm())

        turn = await service.send_message(
            OWNER, "How does Qdrant store vectors?", document_ids=["doc-a", "doc-b"])

        metadata = turn.assistant_message.metadata
        assert metadata.sources == ["doc-a"]
        assert {c.document_id for c in metadata.retrieved_chunks} == {"doc-a"}
        assert turn.assistant_message.content == "Answer from 1 sources."

    @pytest.mark.asyncio
    async def test_conversation_is_persisted(
        self, settings, document_store, chat_store, vector_db, fake_embeddings
    ) -> None:
        await _index(settings, document_store, vector_db, fake_embeddings, "doc-a",
                     "Chunk overlap keeps context between neighbouring chunks.", DocumentStatus.COMPLETED)
        service = _service(settings, document_store, chat_store, vector_db, fake_embeddings, _llm())

        first = await service.send_message(OWNER, "What is chunk overlap?")
        second = await service.send_message(OWNER, "Why does it matter?", chat_id=first.chat.id)

        stored = await service.get_chat(first.chat.id, OWNER)
        assert [m.content for m in stored.messages][::2] == ["What is chunk overlap?", "Why does it matter?"]
        assert second.chat.id == first.chat.id
        assert stored.document_ids == ["doc-a"]

    @pytest.mark.asyncio
    async def test_no_matching_chunks_gives_canned_answer(
        self, settings, document_store, chat_store, vector_db, fake_embeddings
    ) -> None:
        await document_store.create_document(Document(
            id="doc-empty", owner_id=OWNER, title="Empty", type=DocumentType.TEXT,
            source="direct_input", status=DocumentStatus.COMPLETED))
        await vector_db.ensure_ready()
        llm = _llm()
        service = _service(settings, document_store, chat_store, vector_db, fake_embeddings, llm)

        turn = await service.send_message(OWNER, "Is anything indexed?")

        assert turn.assistant_message.content == EMPTY_RETRIEVAL_ANSWER
        assert turn.assistant_message.metadata.sources == []

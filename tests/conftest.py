"""Shared pytest fixtures for the docchat test suite."""

from __future__ import annotations

import hashlib
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest
from qdrant_client import AsyncQdrantClient

from docchat.core.config import Settings
from docchat.core.exceptions import EmbeddingError
from docchat.models.chat import Chat, Message
from docchat.models.document import Document, DocumentStatus
from docchat.services.vector_db import VectorDBService

TEST_DIMENSIONS = 16

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeEmbeddingService:
    """Deterministic bag-of-words embeddings.

    Every word bumps one hashed bucket, so texts sharing words have a
    positive cosine similarity. Texts containing any ``fail_on`` marker
    make the whole call raise, like a provider rejecting one input.
    """

    def __init__(self, dimensions: int = TEST_DIMENSIONS, fail_on: Sequence[str] = ()) -> None:
        self.dimensions = dimensions
        self.fail_on = list(fail_on)
        self.calls: List[List[str]] = []

    def vector_for(self, text: str) -> List[float]:
        vector = [0.0] * self.dimensions
        vector[0] = 1.0
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % (self.dimensions - 1)
            vector[bucket + 1] += 1.0
        return vector

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        for text in texts:
            for marker in self.fail_on:
                if marker in text:
                    raise EmbeddingError(f"Provider rejected input containing {marker}")
        return [self.vector_for(text) for text in texts]

    async def generate_embedding(self, text: str) -> List[float]:
        return (await self.generate_embeddings([text]))[0]


class ScriptedLLM:
    """LLM stand-in returning a fixed reply, a computed reply, or raising."""

    def __init__(
        self,
        reply: Union[str, Callable[[List[Dict[str, str]]], str]] = "Scripted reply",
        error: Optional[BaseException] = None,
    ) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> str:
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        if callable(self.reply):
            return self.reply(messages)
        return self.reply


class InMemoryDocumentStore:
    """Dict-backed document store that records every status a document takes."""

    def __init__(self) -> None:
        self.documents: Dict[str, Document] = {}
        self.status_history: Dict[str, List[DocumentStatus]] = {}

    async def create_document(self, document: Document) -> Document:
        self.documents[document.id] = document.model_copy(deep=True)
        self.status_history[document.id] = [document.status]
        return document.model_copy(deep=True)

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> Optional[Document]:
        current = self.documents.get(document_id)
        if current is None:
            return None
        data = current.model_dump()
        data.update(fields)
        updated = Document.model_validate(data)
        self.documents[document_id] = updated
        if "status" in fields:
            self.status_history[document_id].append(updated.status)
        return updated.model_copy(deep=True)

    async def get_document(self, document_id: str, owner_id: Optional[str] = None) -> Optional[Document]:
        document = self.documents.get(document_id)
        if document is None or (owner_id is not None and document.owner_id != owner_id):
            return None
        return document.model_copy(deep=True)

    async def delete_document(self, document_id: str) -> bool:
        return self.documents.pop(document_id, None) is not None

    async def find_documents(
        self, owner_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Document]:
        return [
            document.model_copy(deep=True)
            for document in self.documents.values()
            if document.owner_id == owner_id and (status is None or document.status == status)
        ]


class InMemoryChatStore:
    """Dict-backed chat store."""

    def __init__(self) -> None:
        self.chats: Dict[str, Chat] = {}

    async def create_chat(self, chat: Chat) -> Chat:
        self.chats[chat.id] = chat.model_copy(deep=True)
        return chat.model_copy(deep=True)

    async def get_chat(self, chat_id: str, owner_id: str) -> Optional[Chat]:
        chat = self.chats.get(chat_id)
        if chat is None or chat.owner_id != owner_id:
            return None
        return chat.model_copy(deep=True)

    async def append_messages(
        self, chat_id: str, messages: Sequence[Message], document_ids: Optional[List[str]] = None
    ) -> Chat:
        chat = self.chats[chat_id]
        chat.messages.extend(messages)
        if document_ids is not None:
            chat.document_ids = list(document_ids)
        return chat.model_copy(deep=True)

    async def delete_chat(self, chat_id: str, owner_id: str) -> bool:
        chat = self.chats.get(chat_id)
        if chat is None or chat.owner_id != owner_id:
            return False
        del self.chats[chat_id]
        return True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_settings(**overrides: Any) -> Settings:
    """Build settings for tests without reading a .env file."""
    values: Dict[str, Any] = {
        "openai_api_key": "test-key",
        "embedding_dimensions": TEST_DIMENSIONS,
        "embedding_batch_delay_seconds": 0.0,
        "retry_delay_seconds": 0.0,
        "upload_dir": "uploads",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture
def fake_embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def scripted_llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def chat_store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
async def qdrant_client():
    client = AsyncQdrantClient(location=":memory:")
    yield client
    await client.close()


@pytest.fixture
def vector_db(settings: Settings, qdrant_client: AsyncQdrantClient) -> VectorDBService:
    return VectorDBService(settings, client=qdrant_client)

"""Chat and message models."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

MAX_CHAT_TITLE_CHARS = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class RetrievedChunkPreview(BaseModel):
    """Truncated view of a retrieved chunk, kept for transparency."""

    document_id: str
    chunk_id: str
    content: str
    score: float


class MessageMetadata(BaseModel):
    """Retrieval details attached to assistant messages."""

    sources: List[str] = Field(default_factory=list)
    retrieved_chunks: List[RetrievedChunkPreview] = Field(default_factory=list)
    enhanced_query: Optional[str] = None


class Message(BaseModel):
    """A single chat message."""

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: Optional[MessageMetadata] = None


class Chat(BaseModel):
    """A conversation scoped to a set of documents."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    title: str = Field(..., max_length=MAX_CHAT_TITLE_CHARS)
    messages: List[Message] = Field(default_factory=list)
    document_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def history(self, limit: int) -> List[Message]:
        """Return the last *limit* messages."""
        if limit <= 0:
            return []
        return self.messages[-limit:]


class ChatAnswer(BaseModel):
    """Result of one retrieval-augmented answer."""

    content: str
    sources: List[str] = Field(default_factory=list)
    retrieved_chunks: List[RetrievedChunkPreview] = Field(default_factory=list)
    enhanced_query: str

    def to_metadata(self) -> MessageMetadata:
        return MessageMetadata(
            sources=self.sources,
            retrieved_chunks=self.retrieved_chunks,
            enhanced_query=self.enhanced_query,
        )


class ChatTurn(BaseModel):
    """Outcome of sending one message."""

    chat: Chat
    is_new_chat: bool
    user_message: Message
    assistant_message: Message

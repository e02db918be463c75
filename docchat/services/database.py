"""Database service for PostgreSQL operations."""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

import asyncpg
from pydantic import BaseModel

from docchat.core.config import Settings
from docchat.core.exceptions import DatabaseError
from docchat.models.chat import Chat, Message
from docchat.models.document import Document, DocumentMetadata, DocumentStatus

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    summary TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL,
    source TEXT NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    status TEXT NOT NULL DEFAULT 'processing',
    error TEXT,
    chunks JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_documents_owner_status ON documents (owner_id, status);

CREATE TABLE IF NOT EXISTS chats (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT NOT NULL,
    messages JSONB NOT NULL DEFAULT '[]'::jsonb,
    document_ids JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_chats_owner ON chats (owner_id);
"""

UPDATABLE_DOCUMENT_FIELDS = ("title", "content", "summary", "metadata", "status", "error", "chunks")
_JSON_FIELDS = ("metadata", "chunks")


class DocumentStore(Protocol):
    """Durable document records, keyed by id and queryable by owner and status."""

    async def create_document(self, document: Document) -> Document: ...

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> Optional[Document]: ...

    async def get_document(self, document_id: str, owner_id: Optional[str] = None) -> Optional[Document]: ...

    async def delete_document(self, document_id: str) -> bool: ...

    async def find_documents(
        self, owner_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Document]: ...


class ChatStore(Protocol):
    """Durable chat records with append-only message history."""

    async def create_chat(self, chat: Chat) -> Chat: ...

    async def get_chat(self, chat_id: str, owner_id: str) -> Optional[Chat]: ...

    async def append_messages(
        self, chat_id: str, messages: Sequence[Message], document_ids: Optional[List[str]] = None
    ) -> Chat: ...

    async def delete_chat(self, chat_id: str, owner_id: str) -> bool: ...


def _dump_json(value: Any) -> str:
    if isinstance(value, DocumentMetadata):
        return json.dumps(value.to_payload())
    if isinstance(value, (list, tuple)):
        return json.dumps([
            item.model_dump(mode="json", by_alias=True, exclude_none=True)
            if isinstance(item, BaseModel) else item
            for item in value
        ])
    return json.dumps(value)


def _load_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


def _row_to_document(row: Any) -> Document:
    return Document(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        content=row["content"],
        summary=row["summary"],
        type=row["type"],
        source=row["source"],
        metadata=_load_json(row["metadata"]) or {},
        status=row["status"],
        error=row["error"],
        chunks=_load_json(row["chunks"]) or [],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chat(row: Any) -> Chat:
    return Chat(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        messages=_load_json(row["messages"]) or [],
        document_ids=_load_json(row["document_ids"]) or [],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class DatabaseService:
    """Service for PostgreSQL database operations."""

    def __init__(self, settings: Settings, pool: Optional[asyncpg.Pool] = None) -> None:
        """
        Initialize database service.

        Args:
            settings: Application settings.
            pool: Existing connection pool, mainly for tests.
        """
        self.settings = settings
        self.pool: Optional[asyncpg.Pool] = pool

    async def connect(self) -> None:
        """Create connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                self.settings.postgres_url,
                min_size=2,
                max_size=10,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()

    async def create_schema(self) -> None:
        """Create the documents and chats tables if they are missing."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                await conn.execute(SCHEMA_SQL)
        except Exception as e:
            raise DatabaseError(f"Failed to create schema: {str(e)}") from e

    async def create_document(self, document: Document) -> Document:
        """
        Insert a new document record.

        Args:
            document: Document to persist.

        Returns:
            The stored document.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO documents
                        (id, owner_id, title, content, summary, type, source,
                         metadata, status, error, chunks, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8::jsonb, $9, $10, $11::jsonb, $12, $13)
                    RETURNING *
                    """,
                    document.id,
                    document.owner_id,
                    document.title,
                    document.content,
                    document.summary,
                    document.type.value,
                    document.source,
                    _dump_json(document.metadata),
                    document.status.value,
                    document.error,
                    _dump_json(document.chunks),
                    document.created_at,
                    document.updated_at,
                )
                return _row_to_document(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create document: {str(e)}") from e

    async def update_document(self, document_id: str, fields: Dict[str, Any]) -> Optional[Document]:
        """
        Update selected fields of a document.

        Args:
            document_id: Document ID.
            fields: Mapping of field name to new value; only title, content,
                summary, metadata, status, error and chunks may change.

        Returns:
            The updated document, or None if it does not exist.
        """
        unknown = set(fields) - set(UPDATABLE_DOCUMENT_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update document fields: {', '.join(sorted(unknown))}")
        if not self.pool:
            raise DatabaseError("Database not connected")

        assignments = []
        values: List[Any] = [document_id]
        for name, value in fields.items():
            if name in _JSON_FIELDS:
                value = _dump_json(value)
            elif isinstance(value, Enum):
                value = value.value
            values.append(value)
            cast = "::jsonb" if name in _JSON_FIELDS else ""
            assignments.append(f"{name} = ${len(values)}{cast}")
        assignments.append("updated_at = NOW()")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"UPDATE documents SET {', '.join(assignments)} WHERE id = $1 RETURNING *",
                    *values,
                )
                return _row_to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to update document: {str(e)}") from e

    async def get_document(self, document_id: str, owner_id: Optional[str] = None) -> Optional[Document]:
        """
        Get a single document by ID.

        Args:
            document_id: Document ID.
            owner_id: When given, the document must belong to this owner.

        Returns:
            Document or None if not found.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT * FROM documents
                    WHERE id = $1 AND ($2::text IS NULL OR owner_id = $2)
                    """,
                    document_id,
                    owner_id,
                )
                return _row_to_document(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e

    async def delete_document(self, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if deleted, False if not found.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute("DELETE FROM documents WHERE id = $1", document_id)
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete document: {str(e)}") from e

    async def find_documents(
        self, owner_id: str, status: Optional[DocumentStatus] = None
    ) -> List[Document]:
        """
        List an owner's documents, newest first.

        Args:
            owner_id: Owner ID.
            status: Optional status filter.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT * FROM documents
                    WHERE owner_id = $1 AND ($2::text IS NULL OR status = $2)
                    ORDER BY created_at DESC
                    """,
                    owner_id,
                    status.value if status else None,
                )
                return [_row_to_document(row) for row in rows]
        except Exception as e:
            raise DatabaseError(f"Failed to fetch documents: {str(e)}") from e

    async def create_chat(self, chat: Chat) -> Chat:
        """Insert a new chat record."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO chats (id, owner_id, title, messages, document_ids, created_at, updated_at)
                    VALUES ($1, $2, $3, $4::jsonb, $5::jsonb, $6, $7)
                    RETURNING *
                    """,
                    chat.id,
                    chat.owner_id,
                    chat.title,
                    _dump_json(chat.messages),
                    _dump_json(chat.document_ids),
                    chat.created_at,
                    chat.updated_at,
                )
                return _row_to_chat(row)
        except Exception as e:
            raise DatabaseError(f"Failed to create chat: {str(e)}") from e

    async def get_chat(self, chat_id: str, owner_id: str) -> Optional[Chat]:
        """Get a chat belonging to an owner."""
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT * FROM chats WHERE id = $1 AND owner_id = $2",
                    chat_id,
                    owner_id,
                )
                return _row_to_chat(row) if row else None
        except Exception as e:
            raise DatabaseError(f"Failed to fetch chat: {str(e)}") from e

    async def append_messages(
        self, chat_id: str, messages: Sequence[Message], document_ids: Optional[List[str]] = None
    ) -> Chat:
        """
        Append messages to a chat in one statement.

        Args:
            chat_id: Chat ID.
            messages: Messages to append, in order.
            document_ids: Replacement document scope, if it changed.

        Returns:
            The updated chat.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE chats
                    SET messages = messages || $2::jsonb,
                        document_ids = COALESCE($3::jsonb, document_ids),
                        updated_at = NOW()
                    WHERE id = $1
                    RETURNING *
                    """,
                    chat_id,
                    _dump_json(list(messages)),
                    _dump_json(document_ids) if document_ids is not None else None,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to append messages: {str(e)}") from e

        if not row:
            raise DatabaseError(f"Chat {chat_id} not found")
        return _row_to_chat(row)

    async def delete_chat(self, chat_id: str, owner_id: str) -> bool:
        """
        Delete a chat belonging to an owner.

        Returns:
            True if deleted, False if not found.
        """
        if not self.pool:
            raise DatabaseError("Database not connected")

        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM chats WHERE id = $1 AND owner_id = $2", chat_id, owner_id)
                return result == "DELETE 1"
        except Exception as e:
            raise DatabaseError(f"Failed to delete chat: {str(e)}") from e

"""Unit tests for DatabaseService using a mocked asyncpg pool."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest

from docchat.core.exceptions import DatabaseError
from docchat.models.chat import Chat, Message, MessageRole
from docchat.models.document import Document, DocumentMetadata, DocumentStatus, DocumentType
from docchat.services.database import DatabaseService

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _pool_with(conn: AsyncMock) -> MagicMock:
    pool = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    return pool


def _document_row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "id": "doc-1",
        "owner_id": "u1",
        "title": "Title",
        "content": "",
        "summary": "",
        "type": "text",
        "source": "direct_input",
        "metadata": json.dumps({"length": 12}),
        "status": "processing",
        "error": None,
        "chunks": "[]",
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    row.update(overrides)
    return row


def _chat_row(**overrides: Any) -> Dict[str, Any]:
    row = {
        "id": "chat-1",
        "owner_id": "u1",
        "title": "Chat",
        "messages": json.dumps([{"role": "user", "content": "hi", "timestamp": _NOW.isoformat()}]),
        "document_ids": json.dumps(["doc-1"]),
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDocuments:
    """Document CRUD statements and row mapping."""

    @pytest.mark.asyncio
    async def test_create_document_serializes_json_columns(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = _document_row()
        db = DatabaseService(settings, pool=_pool_with(conn))
        document = Document(
            id="doc-1", owner_id="u1", title="Title", type=DocumentType.TEXT,
            source="direct_input", metadata=DocumentMetadata(length=12))

        stored = await db.create_document(document)

        args = conn.fetchrow.await_args.args
        assert "INSERT INTO documents" in args[0]
        assert json.loads(args[8]) == {"length": 12}
        assert args[9] == "processing"
        assert json.loads(args[11]) == []
        assert stored.metadata.length == 12
        assert stored.type == DocumentType.TEXT

    @pytest.mark.asyncio
    async def test_update_builds_set_clause(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = _document_row(status="failed", error="boom")
        db = DatabaseService(settings, pool=_pool_with(conn))

        updated = await db.update_document("doc-1", {"status": DocumentStatus.FAILED, "error": "boom"})

        query, *values = conn.fetchrow.await_args.args
        assert "status = $2" in query
        assert "error = $3" in query
        assert "updated_at = NOW()" in query
        assert values == ["doc-1", "failed", "boom"]
        assert updated.status == DocumentStatus.FAILED

    @pytest.mark.asyncio
    async def test_update_casts_json_fields(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = _document_row()
        db = DatabaseService(settings, pool=_pool_with(conn))

        await db.update_document("doc-1", {"metadata": DocumentMetadata(pages=2), "chunks": []})

        query, *values = conn.fetchrow.await_args.args
        assert "metadata = $2::jsonb" in query
        assert "chunks = $3::jsonb" in query
        assert values[2] == "[]"

    @pytest.mark.asyncio
    async def test_update_missing_document(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = None
        db = DatabaseService(settings, pool=_pool_with(conn))

        assert await db.update_document("nope", {"summary": "s"}) is None

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, settings) -> None:
        db = DatabaseService(settings, pool=_pool_with(AsyncMock()))

        with pytest.raises(ValueError, match="owner_id"):
            await db.update_document("doc-1", {"owner_id": "someone-else"})

    @pytest.mark.asyncio
    async def test_find_documents_filters_by_status(self, settings) -> None:
        conn = AsyncMock()
        conn.fetch.return_value = [_document_row(status="completed")]
        db = DatabaseService(settings, pool=_pool_with(conn))

        documents = await db.find_documents("u1", DocumentStatus.COMPLETED)

        assert conn.fetch.await_args.args[1:] == ("u1", "completed")
        assert [d.status for d in documents] == [DocumentStatus.COMPLETED]

    @pytest.mark.asyncio
    async def test_delete_reports_row_count(self, settings) -> None:
        conn = AsyncMock()
        conn.execute.side_effect = ["DELETE 1", "DELETE 0"]
        db = DatabaseService(settings, pool=_pool_with(conn))

        assert await db.delete_document("doc-1") is True
        assert await db.delete_document("doc-1") is False

    @pytest.mark.asyncio
    async def test_driver_errors_are_wrapped(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.side_effect = OSError("connection reset")
        db = DatabaseService(settings, pool=_pool_with(conn))

        with pytest.raises(DatabaseError, match="Failed to fetch document"):
            await db.get_document("doc-1")

    @pytest.mark.asyncio
    async def test_not_connected(self, settings) -> None:
        with pytest.raises(DatabaseError, match="not connected"):
            await DatabaseService(settings).find_documents("u1")


class TestChats:
    """Chat rows and atomic message appends."""

    @pytest.mark.asyncio
    async def test_get_chat_maps_messages(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = _chat_row()
        db = DatabaseService(settings, pool=_pool_with(conn))

        chat = await db.get_chat("chat-1", "u1")

        assert chat.messages[0].role == MessageRole.USER
        assert chat.document_ids == ["doc-1"]
        assert conn.fetchrow.await_args.args[1:] == ("chat-1", "u1")

    @pytest.mark.asyncio
    async def test_create_chat(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = _chat_row()
        db = DatabaseService(settings, pool=_pool_with(conn))
        chat = Chat(id="chat-1", owner_id="u1", title="Chat", document_ids=["doc-1"],
                    messages=[Message(role=MessageRole.USER, content="hi")])

        await db.create_chat(chat)

        args = conn.fetchrow.await_args.args
        assert json.loads(args[4])[0]["content"] == "hi"
        assert json.loads(args[5]) == ["doc-1"]

    @pytest.mark.asyncio
    async def test_append_messages_in_one_statement(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = _chat_row()
        db = DatabaseService(settings, pool=_pool_with(conn))
        messages = [
            Message(role=MessageRole.USER, content="q"),
            Message(role=MessageRole.ASSISTANT, content="a"),
        ]

        await db.append_messages("chat-1", messages)

        conn.fetchrow.assert_awaited_once()
        query, chat_id, payload, scope = conn.fetchrow.await_args.args
        assert "messages || $2::jsonb" in query
        assert [m["role"] for m in json.loads(payload)] == ["user", "assistant"]
        assert scope is None

    @pytest.mark.asyncio
    async def test_append_to_missing_chat(self, settings) -> None:
        conn = AsyncMock()
        conn.fetchrow.return_value = None
        db = DatabaseService(settings, pool=_pool_with(conn))

        with pytest.raises(DatabaseError, match="not found"):
            await db.append_messages("gone", [], ["doc-1"])

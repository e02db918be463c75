"""Owner-scoped chat conversations."""

import logging
from typing import List, Optional, Sequence

from docchat.core.config import Settings
from docchat.core.exceptions import InputValidationError, NotFoundError
from docchat.models.chat import MAX_CHAT_TITLE_CHARS, Chat, ChatTurn, Message, MessageRole
from docchat.models.document import DocumentStatus
from docchat.services.chat_engine import ChatEngine
from docchat.services.database import ChatStore, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_CHAT_TITLE = "New Chat"


class ChatService:
    """Creates chats and runs message turns against the chat engine."""

    def __init__(
        self,
        settings: Settings,
        chat_store: ChatStore,
        document_store: DocumentStore,
        chat_engine: ChatEngine,
    ) -> None:
        self.chat_store = chat_store
        self.document_store = document_store
        self.chat_engine = chat_engine
        self.max_message_chars = settings.max_message_chars
        self.history_messages = settings.history_messages

    async def completed_document_ids(self, owner_id: str) -> List[str]:
        documents = await self.document_store.find_documents(owner_id, DocumentStatus.COMPLETED)
        return [document.id for document in documents]

    def validate_message(self, message: str) -> None:
        if not message or not message.strip():
            raise InputValidationError("Message is required")
        if len(message) > self.max_message_chars:
            raise InputValidationError(
                f"Message must be at most {self.max_message_chars} characters")

    async def create_chat(
        self, owner_id: str, title: Optional[str] = None, document_ids: Optional[Sequence[str]] = None
    ) -> Chat:
        """
        Create an empty chat.

        Raises:
            InputValidationError: If any document id is not a completed
                document of this owner.
        """
        ids = list(dict.fromkeys(document_ids or []))
        if ids:
            completed = set(await self.completed_document_ids(owner_id))
            if not set(ids) <= completed:
                raise InputValidationError("Some documents not found or not completed processing")

        chat = Chat(
            owner_id=owner_id,
            title=(title or "").strip()[:MAX_CHAT_TITLE_CHARS] or DEFAULT_CHAT_TITLE,
            document_ids=ids,
        )
        return await self.chat_store.create_chat(chat)

    def resolve_scope(self, requested: Sequence[str], completed: Sequence[str]) -> List[str]:
        """Keep the requested ids that are completed; fall back to every completed one."""
        completed_set = set(completed)
        scope = [doc_id for doc_id in dict.fromkeys(requested) if doc_id in completed_set]
        return scope or list(completed)

    async def send_message(
        self,
        owner_id: str,
        message: str,
        chat_id: Optional[str] = None,
        document_ids: Optional[Sequence[str]] = None,
    ) -> ChatTurn:
        """
        Answer a message inside a new or existing chat.

        The user and assistant messages are stored together, and only once
        the answer has been produced; a failed turn leaves the chat untouched.

        Args:
            owner_id: Owner of the chat and documents.
            message: The user's message.
            chat_id: Existing chat to continue; a new chat is started when omitted.
            document_ids: Documents to ask about; defaults to the chat's scope.

        Raises:
            InputValidationError: For an empty or oversized message, or when
                the owner has no completed documents.
            NotFoundError: If ``chat_id`` does not belong to the owner.
            ChatError: If the answer could not be generated.
        """
        self.validate_message(message)
        completed = await self.completed_document_ids(owner_id)

        chat: Optional[Chat] = None
        if chat_id:
            chat = await self.chat_store.get_chat(chat_id, owner_id)
            if not chat:
                raise NotFoundError("Chat not found")

        requested = document_ids or (chat.document_ids if chat else completed)
        scope = self.resolve_scope(requested, completed)
        if not scope:
            raise InputValidationError(
                "No completed documents found. Please upload and process some documents first.")

        is_new_chat = chat is None
        if chat is None:
            title = await self.chat_engine.generate_title(message)
            chat = Chat(
                owner_id=owner_id,
                title=title[:MAX_CHAT_TITLE_CHARS],
                document_ids=list(document_ids) if document_ids else list(completed),
            )

        answer = await self.chat_engine.answer(message, scope, chat.history(self.history_messages))

        user_message = Message(role=MessageRole.USER, content=message)
        assistant_message = Message(
            role=MessageRole.ASSISTANT,
            content=answer.content,
            metadata=answer.to_metadata(),
        )

        if is_new_chat:
            chat.messages.extend([user_message, assistant_message])
            chat = await self.chat_store.create_chat(chat)
        else:
            new_scope = None
            if document_ids and sorted(document_ids) != sorted(chat.document_ids):
                new_scope = list(document_ids)
            chat = await self.chat_store.append_messages(
                chat.id, [user_message, assistant_message], new_scope)

        logger.info(f"Chat {chat.id}: answered with {len(answer.sources)} sources")
        return ChatTurn(
            chat=chat,
            is_new_chat=is_new_chat,
            user_message=user_message,
            assistant_message=assistant_message,
        )

    async def get_chat(self, chat_id: str, owner_id: str) -> Optional[Chat]:
        return await self.chat_store.get_chat(chat_id, owner_id)

    async def delete_chat(self, chat_id: str, owner_id: str) -> bool:
        return await self.chat_store.delete_chat(chat_id, owner_id)

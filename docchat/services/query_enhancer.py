"""Conversation-aware query rewriting."""

import logging
from typing import Sequence

from docchat.core.config import Settings
from docchat.models.chat import Message
from docchat.services.llm import LLMService

logger = logging.getLogger(__name__)

ENHANCER_SYSTEM_PROMPT = """You are a query enhancement specialist. Your job is to improve search queries by:
1. Adding relevant context from conversation history
2. Expanding abbreviations and acronyms
3. Making implicit concepts explicit
4. Maintaining the original user intent
5. Keeping the enhanced query concise but comprehensive

Return only the enhanced query without any explanations."""


class QueryEnhancer:
    """Rewrites a user query into a more searchable form."""

    def __init__(self, settings: Settings, llm_service: LLMService) -> None:
        self.llm_service = llm_service
        self.history_messages = settings.enhancer_history_messages
        self.temperature = settings.enhancer_temperature
        self.max_tokens = settings.enhancer_max_tokens
        self.timeout = settings.enhancer_timeout_seconds

    def build_prompt(self, query: str, history: Sequence[Message]) -> str:
        prompt = (
            "Based on the conversation history and user query, enhance and rephrase the query "
            "to be more specific and searchable while maintaining the original intent.\n\n"
            f'User query: "{query}"'
        )
        recent = list(history)[-self.history_messages:] if self.history_messages > 0 else []
        if recent:
            history_text = "\n".join(f"{m.role.value}: {m.content}" for m in recent)
            prompt += f"\n\nRecent conversation context:\n{history_text}"
        return prompt + "\n\nEnhanced query:"

    async def enhance(self, query: str, history: Sequence[Message] = ()) -> str:
        """
        Rewrite a query using recent conversation turns.

        Returns the original query unchanged if the model call fails or
        replies with nothing.
        """
        try:
            enhanced = await self.llm_service.complete(
                [
                    {"role": "system", "content": ENHANCER_SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(query, history)},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except Exception as e:
            logger.error(f"Error enhancing query: {str(e)}")
            return query

        if not enhanced:
            return query
        logger.info(f'Query enhanced: "{query[:100]}" -> "{enhanced[:100]}"')
        return enhanced

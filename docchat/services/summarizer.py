"""Document summarization service."""

import logging

from docchat.core.config import Settings
from docchat.services.llm import LLMService

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates concise summaries. "
    "Create a summary that captures the main points and key information. "
    "Keep it under 300 words and make it informative."
)


class Summarizer:
    """Produces a short summary for every document, falling back to a text prefix."""

    def __init__(self, settings: Settings, llm_service: LLMService) -> None:
        self.llm_service = llm_service
        self.temperature = settings.summary_temperature
        self.input_chars = settings.summary_input_chars
        self.fallback_chars = settings.summary_fallback_chars
        self.max_chars = settings.summary_max_chars

    def fallback(self, text: str) -> str:
        return text[:self.fallback_chars] + "..."

    async def summarize(self, text: str) -> str:
        """
        Summarize a document's text.

        Never raises: any model failure or empty reply yields a truncated
        prefix of the text instead.

        Args:
            text: Full document text.

        Returns:
            A non-empty summary of at most ``summary_max_chars`` characters.
        """
        limited = text[:self.input_chars]
        try:
            summary = await self.llm_service.complete(
                [
                    {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                    {"role": "user", "content": f"Please summarize the following text:\n\n{limited}"},
                ],
                temperature=self.temperature,
            )
        except Exception as e:
            logger.warning(f"Summary generation failed, using truncated text: {str(e)}")
            return self.fallback(text)[:self.max_chars]

        if not summary:
            logger.warning("Empty summary from LLM, using truncated text")
            return self.fallback(text)[:self.max_chars]
        return summary[:self.max_chars]

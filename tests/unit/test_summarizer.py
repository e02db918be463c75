"""Unit tests for the Summarizer and QueryEnhancer degradation paths."""

from __future__ import annotations

import pytest

from docchat.core.exceptions import ErrorKind, LLMError
from docchat.models.chat import Message, MessageRole
from docchat.services.query_enhancer import QueryEnhancer
from docchat.services.summarizer import Summarizer

from conftest import ScriptedLLM


class TestSummarizer:
    """summarize never raises and never returns an empty string."""

    @pytest.mark.asyncio
    async def test_uses_model_reply(self, settings) -> None:
        llm = ScriptedLLM("A concise summary.")
        summary = await Summarizer(settings, llm).summarize("Long document text. " * 50)

        assert summary == "A concise summary."

    @pytest.mark.asyncio
    async def test_input_is_truncated(self, settings) -> None:
        llm = ScriptedLLM("ok")
        await Summarizer(settings, llm).summarize("q" * 10000)

        user_prompt = llm.calls[0][1]["content"]
        assert user_prompt.count("q") == settings.summary_input_chars

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [LLMError("boom", kind=ErrorKind.TIMEOUT), RuntimeError("unexpected")],
    )
    async def test_falls_back_on_error(self, settings, error: BaseException) -> None:
        text = "Word " * 200
        summary = await Summarizer(settings, ScriptedLLM(error=error)).summarize(text)

        assert summary == text[:300] + "..."

    @pytest.mark.asyncio
    async def test_falls_back_on_empty_reply(self, settings) -> None:
        summary = await Summarizer(settings, ScriptedLLM("")).summarize("tiny")
        assert summary == "tiny..."

    @pytest.mark.asyncio
    async def test_empty_input_still_yields_text(self, settings) -> None:
        summary = await Summarizer(settings, ScriptedLLM(error=RuntimeError("x"))).summarize("")
        assert summary

    @pytest.mark.asyncio
    async def test_long_reply_is_capped(self, settings) -> None:
        summary = await Summarizer(settings, ScriptedLLM("s" * 5000)).summarize("text")
        assert len(summary) == settings.summary_max_chars


class TestQueryEnhancer:
    """enhance falls back to the original query."""

    def _history(self, count: int) -> list[Message]:
        roles = [MessageRole.USER, MessageRole.ASSISTANT]
        return [Message(role=roles[i % 2], content=f"turn {i}") for i in range(count)]

    @pytest.mark.asyncio
    async def test_returns_rewritten_query(self, settings) -> None:
        llm = ScriptedLLM("What is retrieval augmented generation (RAG)?")
        enhancer = QueryEnhancer(settings, llm)

        result = await enhancer.enhance("what is rag", self._history(2))

        assert result == "What is retrieval augmented generation (RAG)?"
        assert "Return only the enhanced query" in llm.calls[0][0]["content"]

    @pytest.mark.asyncio
    async def test_uses_last_six_messages(self, settings) -> None:
        llm = ScriptedLLM("rewritten")
        await QueryEnhancer(settings, llm).enhance("and then?", self._history(10))

        prompt = llm.calls[0][1]["content"]
        assert "turn 3" not in prompt
        assert "user: turn 4" in prompt
        assert "assistant: turn 9" in prompt
        assert 'User query: "and then?"' in prompt

    @pytest.mark.asyncio
    async def test_no_history_section_without_history(self, settings) -> None:
        llm = ScriptedLLM("rewritten")
        await QueryEnhancer(settings, llm).enhance("question")

        assert "Recent conversation context" not in llm.calls[0][1]["content"]

    @pytest.mark.asyncio
    async def test_error_returns_original(self, settings) -> None:
        enhancer = QueryEnhancer(settings, ScriptedLLM(error=LLMError("down", kind=ErrorKind.NETWORK)))
        assert await enhancer.enhance("original question") == "original question"

    @pytest.mark.asyncio
    async def test_empty_reply_returns_original(self, settings) -> None:
        assert await QueryEnhancer(settings, ScriptedLLM("")).enhance("original") == "original"

"""Tests for working memory maintenance and the rolling summary."""
import json
from unittest.mock import AsyncMock, MagicMock

import psycopg
import pytest

from ticketflow.conversation import (
    ConversationSummarizer,
    WorkingMemoryManager,
    merge_memory,
    needs_update,
    parse_extraction,
)
from ticketflow.llm import FinishReason, LLMProvider, LLMResult
from ticketflow.schemas import (
    ConversationSummary,
    ConversationTurn,
    TurnRole,
    WorkingMemory,
    WorkingMemoryExtraction,
)


def make_turns(count, start=0):
    return [
        ConversationTurn(
            role=TurnRole.USER if seq % 2 == 0 else TurnRole.ASSISTANT,
            content=f"turn {seq}",
            sequence=seq,
        )
        for seq in range(start, start + count)
    ]


@pytest.fixture
def memory_store():
    store = MagicMock()
    store.get = AsyncMock(return_value=None)
    store.save = AsyncMock(return_value=True)
    return store


EXTRACTION_JSON = json.dumps({
    "summary": "Planning dark mode.",
    "goals": ["Ship dark mode"],
    "decisions": ["Use existing theme tokens"],
})


def model_reply(text="", **kwargs):
    return LLMResult(text=text, provider=LLMProvider.OPENAI, model="gpt-4o-mini", **kwargs)


def sent_prompt(llm):
    return llm.invoke.await_args.args[0][0].content


class TestParseExtraction:
    """Tests for parsing the model's JSON reply."""

    def test_plain_json(self):
        extraction = parse_extraction(EXTRACTION_JSON)
        assert extraction.goals == ["Ship dark mode"]

    def test_fenced_json(self):
        extraction = parse_extraction(f"```json\n{EXTRACTION_JSON}\n```")
        assert extraction.summary == "Planning dark mode."

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_extraction("I could not do that")
        with pytest.raises(ValueError):
            parse_extraction('{"goals": "not a list"}')


class TestMergeMemory:
    """Tests for incremental merge."""

    def test_dedupes_case_insensitively(self):
        memory = WorkingMemory(project_id="p", agent_id="pm", goals=["Ship dark mode"])
        extraction = WorkingMemoryExtraction(goals=["ship DARK mode", "Add toggle"])

        merged = merge_memory(memory, extraction, through_sequence=3)

        assert merged.goals == ["Ship dark mode", "Add toggle"]
        assert merged.through_sequence == 3

    def test_keeps_summary_when_extraction_blank(self):
        memory = WorkingMemory(project_id="p", agent_id="pm", summary="Old summary")
        merged = merge_memory(memory, WorkingMemoryExtraction(), through_sequence=1)
        assert merged.summary == "Old summary"


class TestNeedsUpdate:
    """Tests for the update trigger."""

    def test_up_to_date(self):
        memory = WorkingMemory(project_id="p", agent_id="pm", through_sequence=3)
        assert needs_update(memory, make_turns(4)) is False

    def test_new_turns(self):
        memory = WorkingMemory(project_id="p", agent_id="pm", through_sequence=1)
        assert needs_update(memory, make_turns(4)) is True

    def test_no_turns(self):
        assert needs_update(None, []) is False


class TestWorkingMemoryManager:
    """Tests for update_after_turn."""

    @pytest.mark.asyncio
    async def test_first_update(self, mock_llm, memory_store):
        mock_llm.invoke.return_value = model_reply(EXTRACTION_JSON)
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=10)

        updated = await manager.update_after_turn("p", "pm", make_turns(2))

        assert updated.through_sequence == 1
        assert updated.goals == ["Ship dark mode"]
        memory_store.save.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requests_structured_output(self, mock_llm, memory_store):
        mock_llm.invoke.return_value = model_reply(EXTRACTION_JSON)
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=10)

        await manager.update_after_turn("p", "pm", make_turns(2))

        assert mock_llm.invoke.await_args.kwargs["response_schema"] is WorkingMemoryExtraction

    @pytest.mark.asyncio
    async def test_model_error_does_not_advance(self, mock_llm, memory_store):
        mock_llm.invoke.return_value = model_reply(finish_reason=FinishReason.ERROR, error="timeout")
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=10)

        assert await manager.update_after_turn("p", "pm", make_turns(2)) is None
        memory_store.save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_extraction_does_not_advance(self, mock_llm, memory_store):
        """A bad model reply writes nothing, so the next call retries the same turns."""
        memory_store.get.return_value = WorkingMemory(project_id="p", agent_id="pm", through_sequence=1)
        mock_llm.invoke.return_value = model_reply("not json at all")
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=10)

        result = await manager.update_after_turn("p", "pm", make_turns(4))

        assert result is None
        memory_store.save.assert_not_awaited()
        prompt = sent_prompt(mock_llm)
        assert "[2] user: turn 2" in prompt
        assert "[1] assistant: turn 1" not in prompt

    @pytest.mark.asyncio
    async def test_failed_save_does_not_advance(self, mock_llm, memory_store):
        mock_llm.invoke.return_value = model_reply(EXTRACTION_JSON)
        memory_store.save.side_effect = psycopg.OperationalError("down")
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=10)

        assert await manager.update_after_turn("p", "pm", make_turns(2)) is None

    @pytest.mark.asyncio
    async def test_up_to_date_skips_model(self, mock_llm, memory_store):
        current = WorkingMemory(project_id="p", agent_id="pm", through_sequence=3)
        memory_store.get.return_value = current
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=10)

        assert await manager.update_after_turn("p", "pm", make_turns(4)) == current
        mock_llm.invoke.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resummarize_past_threshold(self, mock_llm, memory_store):
        memory_store.get.return_value = WorkingMemory(
            project_id="p", agent_id="pm", goals=["Old goal"], through_sequence=0
        )
        mock_llm.invoke.return_value = model_reply(EXTRACTION_JSON)
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=3)

        updated = await manager.update_after_turn("p", "pm", make_turns(6))

        assert "Rewrite the complete working memory" in sent_prompt(mock_llm)
        assert updated.goals == ["Ship dark mode"]
        assert updated.through_sequence == 5

    @pytest.mark.asyncio
    async def test_incremental_below_threshold(self, mock_llm, memory_store):
        memory_store.get.return_value = WorkingMemory(
            project_id="p", agent_id="pm", goals=["Old goal"], through_sequence=3
        )
        mock_llm.invoke.return_value = model_reply(EXTRACTION_JSON)
        manager = WorkingMemoryManager(mock_llm, memory_store, resummarize_threshold=3)

        updated = await manager.update_after_turn("p", "pm", make_turns(6))

        assert "Extract only NEW facts" in sent_prompt(mock_llm)
        assert updated.goals == ["Old goal", "Ship dark mode"]


class TestConversationSummarizer:
    """Tests for the rolling summary of out-of-window turns."""

    @pytest.fixture
    def summary_store(self):
        store = MagicMock()
        store.get_summary = AsyncMock(return_value=None)
        store.save_summary = AsyncMock(return_value=True)
        return store

    @pytest.mark.asyncio
    async def test_nothing_out_of_window(self, mock_llm, summary_store):
        summarizer = ConversationSummarizer(mock_llm, summary_store)
        assert await summarizer.update("p", "pm", make_turns(5), keep_recent=20) is None
        mock_llm.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_folds_older_turns(self, mock_llm, summary_store):
        mock_llm.chat.return_value = "We agreed on dark mode."
        summarizer = ConversationSummarizer(mock_llm, summary_store)

        summary = await summarizer.update("p", "pm", make_turns(25), keep_recent=20)

        assert summary.summary_text == "We agreed on dark mode."
        assert summary.through_sequence == 4
        summary_store.save_summary.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_only_new_turns_folded(self, mock_llm, summary_store):
        summary_store.get_summary.return_value = ConversationSummary(
            project_id="p", agent_id="pm", summary_text="Earlier.", through_sequence=4
        )
        mock_llm.chat.return_value = "Updated."
        summarizer = ConversationSummarizer(mock_llm, summary_store)

        summary = await summarizer.update("p", "pm", make_turns(27), keep_recent=20)

        prompt = mock_llm.chat.await_args.args[0]
        assert "[5] assistant: turn 5" in prompt
        assert "[4] user: turn 4" not in prompt
        assert summary.through_sequence == 6

"""Conversation context: bounded context packs, working memory, summaries."""
from ticketflow.conversation.context import (
    build_context,
    format_turns,
    format_working_memory,
    truncation_note,
)
from ticketflow.conversation.summarizer import ConversationSummarizer
from ticketflow.conversation.working_memory import (
    WorkingMemoryManager,
    merge_memory,
    needs_update,
    parse_extraction,
)

__all__ = [
    "build_context",
    "format_turns",
    "format_working_memory",
    "truncation_note",
    "ConversationSummarizer",
    "WorkingMemoryManager",
    "merge_memory",
    "needs_update",
    "parse_extraction",
]

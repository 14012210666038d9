"""Rolling summary of turns that have scrolled out of the recent window.

Usage:
    summarizer = ConversationSummarizer(llm, ConversationStore(conn))
    summary = await summarizer.update(project_id, agent_id, turns, keep_recent=20)
"""

import logging
from typing import Optional

from ticketflow.conversation.context import format_turns
from ticketflow.kanban.transitions import DATASTORE_ERRORS
from ticketflow.llm import UnifiedChatClient
from ticketflow.schemas.conversation import ConversationSummary, ConversationTurn

logger = logging.getLogger(__name__)


SUMMARY_PROMPT = """You are maintaining a rolling summary of a product-planning conversation.

Current summary:
{current_summary}

Older turns to fold in:
{new_turns}

Update the summary to incorporate these turns. Keep it concise (2-3 paragraphs max).
Focus on: tickets discussed, decisions made, open questions."""


def turns_to_summarize(
    turns: list[ConversationTurn],
    summary: Optional[ConversationSummary],
    keep_recent: int,
) -> list[ConversationTurn]:
    """Turns older than the recent window and newer than the summary mark."""
    ordered = sorted(turns, key=lambda t: t.sequence)
    older = ordered[:-keep_recent] if keep_recent > 0 else ordered
    mark = summary.through_sequence if summary else -1
    return [t for t in older if t.sequence > mark]


class ConversationSummarizer:
    def __init__(self, llm: UnifiedChatClient, store):
        self.llm = llm
        self.store = store

    async def update(
        self,
        project_id: str,
        agent_id: str,
        turns: list[ConversationTurn],
        keep_recent: int,
    ) -> Optional[ConversationSummary]:
        """Fold newly out-of-window turns into the summary.

        On failure the stored summary is returned unchanged.
        """
        try:
            summary = await self.store.get_summary(project_id, agent_id)
        except DATASTORE_ERRORS as e:
            logger.error(f"Summary read failed: {e}", extra={"project_id": project_id})
            return None

        pending = turns_to_summarize(turns, summary, keep_recent)
        if not pending:
            return summary

        prompt = SUMMARY_PROMPT.format(
            current_summary=(summary.summary_text if summary else "") or "No previous summary.",
            new_turns=format_turns(pending),
        )
        text = (await self.llm.chat(prompt)).strip()
        if not text:
            logger.warning(
                "Summary update returned no text; keeping previous summary",
                extra={"project_id": project_id, "agent_id": agent_id},
            )
            return summary

        updated = ConversationSummary(
            project_id=project_id,
            agent_id=agent_id,
            summary_text=text,
            through_sequence=pending[-1].sequence,
        )
        try:
            await self.store.save_summary(updated)
        except DATASTORE_ERRORS as e:
            logger.error(f"Summary save failed: {e}", extra={"project_id": project_id})
            return summary
        return updated

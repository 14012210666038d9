"""Working memory maintenance.

After each turn the new turns are folded into a durable record of the
conversation's goals, decisions and constraints. Small batches are merged
incrementally; once more than ``resummarize_threshold`` turns have piled up
the record is rebuilt. ``through_sequence`` advances only when extraction
and the save both succeed, so a failed turn is retried from the same point
next time.
"""

import json
import logging
import re
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ticketflow.config import get_settings
from ticketflow.conversation.context import format_turns, format_working_memory
from ticketflow.kanban.transitions import DATASTORE_ERRORS
from ticketflow.llm import FinishReason, Message, MessageRole, UnifiedChatClient
from ticketflow.schemas.conversation import (
    ConversationTurn,
    WorkingMemory,
    WorkingMemoryExtraction,
)

logger = logging.getLogger(__name__)

_LIST_FIELDS = (
    "goals",
    "requirements",
    "constraints",
    "decisions",
    "assumptions",
    "open_questions",
    "stakeholders",
)

_JSON_SHAPE = """{
  "summary": "2-4 sentences",
  "goals": [], "requirements": [], "constraints": [], "decisions": [],
  "assumptions": [], "open_questions": [], "stakeholders": [],
  "glossary": {"term": "meaning"}
}"""

EXTRACT_PROMPT = """You maintain the working memory of a product-manager assistant.

Current working memory:
{current_memory}

New conversation turns:
{new_turns}

Extract only NEW facts from the new turns. Keep items short and specific.
Return JSON only, with this shape:
{shape}"""

RESUMMARIZE_PROMPT = """You maintain the working memory of a product-manager assistant.

Current working memory:
{current_memory}

Conversation turns since it was last updated:
{new_turns}

Rewrite the complete working memory. Keep every decision and constraint that
is still in force, drop items the conversation has superseded, and resolve
answered open questions. Return JSON only, with this shape:
{shape}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_extraction(text: str) -> WorkingMemoryExtraction:
    """Parse the model's JSON reply, tolerating a markdown code fence.

    Raises:
        ValueError: If the text holds no valid extraction object.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        raise ValueError("No JSON object in model reply")
    try:
        return WorkingMemoryExtraction.model_validate(json.loads(cleaned[start:end + 1]))
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise ValueError(f"Invalid working memory JSON: {e}") from e


def _merge_list(existing: list[str], new: list[str]) -> list[str]:
    seen = {item.strip().lower() for item in existing}
    merged = list(existing)
    for item in new:
        key = item.strip().lower()
        if key and key not in seen:
            seen.add(key)
            merged.append(item.strip())
    return merged


def merge_memory(
    memory: WorkingMemory,
    extraction: WorkingMemoryExtraction,
    through_sequence: int,
) -> WorkingMemory:
    """Fold an incremental extraction into existing memory."""
    data = memory.model_dump()
    for name in _LIST_FIELDS:
        data[name] = _merge_list(getattr(memory, name), getattr(extraction, name))
    data["glossary"] = {**memory.glossary, **extraction.glossary}
    data["summary"] = extraction.summary.strip() or memory.summary
    data["through_sequence"] = through_sequence
    return WorkingMemory(**data)


def replace_memory(
    memory: WorkingMemory,
    extraction: WorkingMemoryExtraction,
    through_sequence: int,
) -> WorkingMemory:
    """Rebuild memory from a full resummarization."""
    return WorkingMemory(
        project_id=memory.project_id,
        agent_id=memory.agent_id,
        through_sequence=through_sequence,
        **{
            **extraction.model_dump(),
            "summary": extraction.summary.strip() or memory.summary,
        },
    )


def needs_update(
    memory: Optional[WorkingMemory],
    turns: list[ConversationTurn],
    force: bool = False,
) -> bool:
    if not turns:
        return False
    if force or memory is None:
        return True
    return memory.through_sequence < max(t.sequence for t in turns)


class WorkingMemoryManager:
    """Keeps one (project, agent) working memory record current."""

    def __init__(self, llm: UnifiedChatClient, store, resummarize_threshold: Optional[int] = None):
        self.llm = llm
        self.store = store
        self.resummarize_threshold = (
            resummarize_threshold
            if resummarize_threshold is not None
            else get_settings().resummarize_threshold
        )

    async def update_after_turn(
        self,
        project_id: str,
        agent_id: str,
        turns: list[ConversationTurn],
        force: bool = False,
    ) -> Optional[WorkingMemory]:
        """Fold turns after the stored high-water mark into working memory.

        Returns:
            The stored memory after the update, the unchanged memory when no
            update was needed, or None when the update failed (nothing
            written, high-water mark unchanged).
        """
        try:
            memory = await self.store.get(project_id, agent_id)
        except DATASTORE_ERRORS as e:
            logger.error(f"Working memory read failed: {e}", extra={"project_id": project_id})
            return None

        if not needs_update(memory, turns, force):
            return memory

        current = memory or WorkingMemory(project_id=project_id, agent_id=agent_id)
        new_turns = sorted(
            (t for t in turns if force or t.sequence > current.through_sequence),
            key=lambda t: t.sequence,
        )
        if not new_turns:
            return memory
        through = new_turns[-1].sequence
        resummarize = force or len(new_turns) > self.resummarize_threshold

        prompt = (RESUMMARIZE_PROMPT if resummarize else EXTRACT_PROMPT).format(
            current_memory=format_working_memory(current) if memory else "None yet.",
            new_turns=format_turns(new_turns),
            shape=_JSON_SHAPE,
        )

        reply = await self.llm.invoke(
            [Message(role=MessageRole.USER, content=prompt)],
            response_schema=WorkingMemoryExtraction,
        )
        if reply.finish_reason == FinishReason.ERROR:
            logger.warning(
                f"Working memory model call failed: {reply.error}",
                extra={"project_id": project_id, "agent_id": agent_id, "through_sequence": through},
            )
            return None

        try:
            extraction = parse_extraction(reply.text)
        except ValueError as e:
            logger.warning(
                f"Working memory extraction failed: {e}",
                extra={"project_id": project_id, "agent_id": agent_id, "through_sequence": through},
            )
            return None

        updated = (
            replace_memory(current, extraction, through)
            if resummarize
            else merge_memory(current, extraction, through)
        )

        try:
            written = await self.store.save(updated)
            if not written:
                return await self.store.get(project_id, agent_id)
        except DATASTORE_ERRORS as e:
            logger.error(f"Working memory save failed: {e}", extra={"project_id": project_id})
            return None

        logger.info(
            "Working memory updated",
            extra={
                "project_id": project_id,
                "agent_id": agent_id,
                "through_sequence": through,
                "mode": "resummarize" if resummarize else "incremental",
            },
        )
        return updated

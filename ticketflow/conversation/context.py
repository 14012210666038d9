"""Bounded context assembly for the PM agent.

A context pack holds durable working memory, an optional rolling summary of
older turns, the most recent N turns verbatim and the continuity token of
the last assistant turn.
"""
from typing import Optional

from ticketflow.config import get_settings
from ticketflow.schemas.conversation import (
    ContextPack,
    ConversationSummary,
    ConversationTurn,
    ImageAttachment,
    TurnRole,
    WorkingMemory,
)

MAX_CONTEXT_IMAGES = 5

_MEMORY_SECTIONS = (
    ("goals", "Goals"),
    ("requirements", "Requirements"),
    ("constraints", "Constraints"),
    ("decisions", "Decisions"),
    ("assumptions", "Assumptions"),
    ("open_questions", "Open questions"),
    ("stakeholders", "Stakeholders"),
)


def format_working_memory(memory: WorkingMemory) -> str:
    """Render working memory for the prompt. Empty sections are omitted."""
    lines = ["## PM Working Memory", ""]
    if memory.summary:
        lines += [f"**Summary:** {memory.summary}", ""]
    for field, label in _MEMORY_SECTIONS:
        items = getattr(memory, field)
        if items:
            lines.append(f"**{label}:**")
            lines += [f"- {item}" for item in items]
            lines.append("")
    if memory.glossary:
        lines.append("**Glossary:**")
        lines += [f"- **{term}**: {meaning}" for term, meaning in sorted(memory.glossary.items())]
        lines.append("")
    return "\n".join(lines).strip()


def format_turns(turns: list[ConversationTurn]) -> str:
    return "\n\n".join(
        f"[{turn.sequence}] {turn.role.value}: {turn.content}" for turn in turns
    )


def truncation_note(omitted: int) -> Optional[str]:
    if omitted <= 0:
        return None
    plural = "turn" if omitted == 1 else "turns"
    return (
        f"Note: {omitted} earlier conversation {plural} omitted. "
        "Rely on the working memory and summary for what was said before."
    )


def build_context(
    project_id: str,
    agent_id: str,
    turns: list[ConversationTurn],
    *,
    working_memory: Optional[WorkingMemory] = None,
    summary: Optional[ConversationSummary] = None,
    max_turns: Optional[int] = None,
) -> ContextPack:
    """Assemble the bounded context for one agent turn.

    Never returns more than ``max_turns`` verbatim turns; when older turns
    are dropped the pack carries a truncation note.
    """
    limit = max_turns if max_turns is not None else get_settings().recent_turns_limit
    ordered = sorted(turns, key=lambda t: t.sequence)
    recent = ordered[-limit:] if limit > 0 else []
    omitted = len(ordered) - len(recent)

    previous_response_id = None
    for turn in reversed(ordered):
        if turn.role == TurnRole.ASSISTANT:
            previous_response_id = turn.response_id
            break

    images: list[ImageAttachment] = []
    for turn in recent:
        if turn.role == TurnRole.USER:
            images.extend(turn.images)

    summary_text = None
    if summary is not None and summary.summary_text and omitted:
        summary_text = f"## Summary of earlier conversation\n\n{summary.summary_text}"

    return ContextPack(
        project_id=project_id,
        agent_id=agent_id,
        working_memory_text=format_working_memory(working_memory) if working_memory else None,
        summary_text=summary_text,
        recent_turns=recent,
        omitted_turns=omitted,
        truncation_note=truncation_note(omitted),
        previous_response_id=previous_response_id,
        images=images[-MAX_CONTEXT_IMAGES:],
    )

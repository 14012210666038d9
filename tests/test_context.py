"""Tests for bounded context assembly."""
from ticketflow.conversation import build_context, format_working_memory, truncation_note
from ticketflow.schemas import (
    ConversationSummary,
    ConversationTurn,
    ImageAttachment,
    TurnRole,
    WorkingMemory,
)


def make_turns(count, start=0):
    turns = []
    for seq in range(start, start + count):
        role = TurnRole.USER if seq % 2 == 0 else TurnRole.ASSISTANT
        turns.append(ConversationTurn(
            role=role,
            content=f"turn {seq}",
            sequence=seq,
            response_id=f"resp_{seq}" if role == TurnRole.ASSISTANT else None,
        ))
    return turns


class TestBuildContext:
    """Tests for build_context."""

    def test_keeps_most_recent_turns(self):
        pack = build_context("p1", "pm", make_turns(25), max_turns=20)

        assert len(pack.recent_turns) == 20
        assert pack.recent_turns[0].sequence == 5
        assert pack.recent_turns[-1].sequence == 24
        assert pack.omitted_turns == 5
        assert pack.truncation_note.startswith("Note: 5 earlier conversation turns omitted.")

    def test_no_truncation_note_within_bound(self):
        pack = build_context("p1", "pm", make_turns(3), max_turns=20)
        assert pack.omitted_turns == 0
        assert pack.truncation_note is None

    def test_turns_ordered_by_sequence(self):
        turns = list(reversed(make_turns(4)))
        pack = build_context("p1", "pm", turns, max_turns=20)
        assert [t.sequence for t in pack.recent_turns] == [0, 1, 2, 3]

    def test_summary_only_when_turns_omitted(self):
        summary = ConversationSummary(
            project_id="p1", agent_id="pm", summary_text="Discussed dark mode.", through_sequence=4
        )
        short = build_context("p1", "pm", make_turns(3), summary=summary, max_turns=20)
        long = build_context("p1", "pm", make_turns(25), summary=summary, max_turns=20)

        assert short.summary_text is None
        assert "Discussed dark mode." in long.summary_text

    def test_previous_response_id_from_last_assistant_turn(self):
        pack = build_context("p1", "pm", make_turns(5), max_turns=20)
        assert pack.previous_response_id == "resp_3"

    def test_no_assistant_turn_no_token(self):
        pack = build_context("p1", "pm", make_turns(1), max_turns=20)
        assert pack.previous_response_id is None

    def test_working_memory_rendered(self):
        memory = WorkingMemory(project_id="p1", agent_id="pm", decisions=["Use theme tokens"])
        pack = build_context("p1", "pm", make_turns(2), working_memory=memory, max_turns=20)
        assert "## PM Working Memory" in pack.working_memory_text
        assert "- Use theme tokens" in pack.working_memory_text

    def test_no_working_memory(self):
        pack = build_context("p1", "pm", make_turns(2), max_turns=20)
        assert pack.working_memory_text is None

    def test_images_capped(self):
        turns = [
            ConversationTurn(
                role=TurnRole.USER,
                content=f"screenshot {i}",
                sequence=i,
                images=[ImageAttachment(url=f"data:image/png;base64,{i}")],
            )
            for i in range(7)
        ]
        pack = build_context("p1", "pm", turns, max_turns=20)
        assert [img.url[-1] for img in pack.images] == ["2", "3", "4", "5", "6"]


class TestFormatting:
    """Tests for prompt rendering helpers."""

    def test_empty_sections_omitted(self):
        memory = WorkingMemory(
            project_id="p1",
            agent_id="pm",
            summary="Dark mode project",
            goals=["Ship dark mode"],
            glossary={"HITL": "Human in the loop"},
        )
        text = format_working_memory(memory)
        assert "**Summary:** Dark mode project" in text
        assert "**Goals:**" in text
        assert "**Glossary:**" in text
        assert "**Constraints:**" not in text

    def test_truncation_note_singular(self):
        assert truncation_note(1).startswith("Note: 1 earlier conversation turn omitted.")
        assert truncation_note(0) is None
